#!/usr/bin/env python3
"""
Schedule Module

Date helpers for the scheduled jobs. All eligibility checks use Israel local
time (Asia/Jerusalem), since that is where the 10bis week runs:
- Sunday to Thursday are working days
- Friday and Saturday are the weekend; credit loading is not accepted then

Key functions:
- get_israel_time(): Current time in Israel (timezone-aware)
- is_weekend(): Check if a date falls on Friday or Saturday
- format_israel_time(): Human-readable timestamp for logs and notifications
"""

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Union

import pytz

logger = logging.getLogger(__name__)

ISRAEL_TZ = pytz.timezone('Asia/Jerusalem')

# Python weekday numbers (Monday=0): Friday=4, Saturday=5
WEEKEND_DAYS = (4, 5)

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def get_israel_time(now: Optional[datetime] = None) -> datetime:
    """
    Get the current (or given) time in Israel.

    Naive datetimes are assumed to be UTC.
    """
    if now is None:
        return datetime.now(ISRAEL_TZ)
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(ISRAEL_TZ)


def to_israel_date(value: Union[date, datetime, None] = None) -> date:
    """Calendar date in Israel for a datetime (or today)."""
    if isinstance(value, datetime) or value is None:
        return get_israel_time(value).date()
    return value


def is_weekend(
    value: Union[date, datetime, None] = None,
    weekend_days: Iterable[int] = WEEKEND_DAYS,
) -> bool:
    """
    Check if the date is a blocked weekend day (Friday or Saturday by default).

    Args:
        value: Date or datetime to check (default: now in Israel)
        weekend_days: Python weekday numbers to treat as blocked

    Returns:
        bool: True on a blocked day
    """
    return to_israel_date(value).weekday() in tuple(weekend_days)


def weekday_name(value: Union[date, datetime, None] = None) -> str:
    return WEEKDAY_NAMES[to_israel_date(value).weekday()]


def format_israel_time(now: Optional[datetime] = None) -> str:
    """Timestamp like 10/18/2026, 09:30:00 (Israel local time)."""
    return get_israel_time(now).strftime("%m/%d/%Y, %H:%M:%S")


def parse_weekdays(value: Optional[str]) -> tuple:
    """
    Parse a comma-separated list of day names or numbers ("fri,sat" or "4,5").

    Returns:
        tuple: Python weekday numbers
    """
    if not value:
        return WEEKEND_DAYS

    days = []
    for item in value.split(","):
        item = item.strip().lower()
        if not item:
            continue
        if item.isdigit():
            number = int(item)
        else:
            matches = [i for i, name in enumerate(WEEKDAY_NAMES) if name.lower().startswith(item[:3])]
            if not matches:
                raise ValueError(f"Unknown weekday: {item}")
            number = matches[0]
        if not 0 <= number <= 6:
            raise ValueError(f"Weekday out of range: {item}")
        days.append(number)
    return tuple(days)
