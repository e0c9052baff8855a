#!/usr/bin/env python3
"""
Logger Service Module

Sets up logging for one scheduled action:
- Console output (captured by cron mail, systemd journal or the Actions log)
- Per-action log file (logs/refresh.log, logs/credit.log)
- Shared logs/error.log receiving ERROR and above from every action

Secrets never reach a sink: every handler carries a SecretMaskingFilter, and
values registered with it are replaced by "***" in the formatted message,
in traceback text and in stack info.
"""

import logging
from pathlib import Path
from typing import Optional, Set

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ERROR_LOG_FILE = "error.log"
MASK = "***"

# Tokens shorter than this are not masked (too likely to hit normal text)
MIN_SECRET_LENGTH = 4

_TRACEBACK_FORMATTER = logging.Formatter()


class SecretMaskingFilter(logging.Filter):
    """Replaces registered secret values in log records."""

    def __init__(self):
        super().__init__()
        self._secrets: Set[str] = set()

    def add_secret(self, value) -> None:
        if value is None:
            return
        value = str(value).strip()
        if len(value) >= MIN_SECRET_LENGTH:
            self._secrets.add(value)

    def mask(self, text: str) -> str:
        # Longest first so a secret containing another is fully replaced
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, MASK)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        record.msg = self.mask(record.getMessage())
        record.args = None
        # Formatters reuse a cached exc_text, so the masked traceback is what gets written
        if record.exc_info and not record.exc_text:
            record.exc_text = _TRACEBACK_FORMATTER.formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.mask(record.exc_text)
        if record.stack_info:
            record.stack_info = self.mask(record.stack_info)
        return True


def preview(value: Optional[str], length: int = 10) -> str:
    """Short non-reversible preview of a token for change logging."""
    if not value:
        return "NOT_SET"
    value = str(value)
    if len(value) <= length * 2:
        return f"{MASK} (length: {len(value)})"
    return f"{value[:4]}...{value[-4:]} (length: {len(value)})"


def setup_logging(
    log_dir: str = "logs",
    log_file: str = "general.log",
    level: str = "INFO",
    masking_filter: Optional[SecretMaskingFilter] = None,
) -> SecretMaskingFilter:
    """
    Configure the root logger for one action run.

    Calling it again replaces the handlers installed by a previous call, so a
    test or a second run in the same interpreter does not duplicate output.

    Args:
        log_dir: Directory for log files (created if missing)
        log_file: Per-action log file name
        level: Log level name
        masking_filter: Filter to attach (a new one is created if omitted)

    Returns:
        SecretMaskingFilter: The filter attached to every handler
    """
    masking_filter = masking_filter or SecretMaskingFilter()
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_autoload_handler", False):
            root.removeHandler(handler)
            handler.close()

    handlers = [logging.StreamHandler()]
    file_error = None
    try:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path / log_file, encoding="utf-8"))
        error_handler = logging.FileHandler(log_path / ERROR_LOG_FILE, encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)
    except OSError as e:
        file_error = e

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(masking_filter)
        handler._autoload_handler = True
        root.addHandler(handler)

    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # Console logging still works without the files
    if file_error is not None:
        logging.getLogger(__name__).warning(f"File logging disabled ({log_dir}): {file_error}")

    return masking_filter
