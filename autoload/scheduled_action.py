#!/usr/bin/env python3
"""
Scheduled Action Module

Base class for the cron-style jobs (token refresh, credit loading).

One invocation walks this state machine exactly once:

    Start -> EligibilityCheck -> Skipped
                              -> ConfigLoaded -> ValidationFailed
                                              -> RequestBuilt -> RequestExecuted
                                                 -> UpdateExtracted -> PersistedUpdate
          -> NotifySuccess | NotifyFailure -> Terminal

Rules:
- A blocked day skips the run before any network call or write (exit 0)
- An empty token update is logged, not treated as an error
- Any failure (validation, HTTP, persistence) notifies and exits 1
- Authentication failures (401 / "Unauthorized") are flagged so the operator
  knows to run the token refresh job

Subclasses provide: title, bot_name, log_file, required_fields,
build_request(), and optionally is_blocked() / handle_response() and the
notification hooks.
"""

import argparse
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from autoload import github_actions
from autoload.config_loader import ActionContext
from autoload.exceptions import AutoloadError, is_auth_error
from autoload.http_client import HttpResponse, RequestDescriptor
from autoload.schedule import format_israel_time

logger = logging.getLogger(__name__)

# Headers the 10bis web client sends on every call
WEB_CLIENT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Language": "he",
    "X-App-Type": "web",
    "Content-Type": "application/json",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/135.0.0.0 Safari/537.36"
    ),
}


class ActionStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ActionResult:
    """Terminal state of one run."""
    status: ActionStatus
    updated_fields: List[str] = field(default_factory=list)
    error: Optional[str] = None
    auth_error: bool = False
    response_status: Optional[int] = None

    @property
    def exit_code(self) -> int:
        return 1 if self.status == ActionStatus.FAILED else 0


class ScheduledAction:
    """Orchestrates one scheduled job run against an ActionContext."""

    title = "Scheduled Action"
    bot_name = "AUTOLOAD"
    log_file = "general.log"
    required_fields: Sequence[str] = ()

    def __init__(self, context: ActionContext):
        self.context = context
        self.settings = context.settings
        self.store = context.store
        self.http_client = context.http_client
        self.credentials: Optional[Dict[str, Any]] = None

    # =========================================================================
    # HOOKS
    # =========================================================================

    def is_blocked(self, now: datetime) -> bool:
        """Eligibility predicate. True means skip this run."""
        return False

    def build_request(self, credentials: Dict[str, Any]) -> RequestDescriptor:
        raise NotImplementedError

    def handle_response(self, credentials: Dict[str, Any], response: HttpResponse) -> Dict[str, Any]:
        """Inspect a successful response and return the credential updates."""
        return {}

    def on_skipped(self, now: datetime) -> None:
        pass

    def on_success(self, credentials: Dict[str, Any], result: ActionResult, timestamp: str) -> None:
        pass

    def on_failure(self, credentials: Optional[Dict[str, Any]], result: ActionResult, timestamp: str) -> None:
        pass

    # =========================================================================
    # RUN
    # =========================================================================

    def url(self, path: str) -> str:
        return f"{self.settings.api_base_url}/{path.lstrip('/')}"

    def persist(self, updates: Dict[str, Any]) -> None:
        if self.settings.dry_run:
            logger.info(f"[DRY RUN] Not persisting updated fields: {', '.join(updates)}")
            return
        self.store.save(updates)

    def execute(self, now: datetime) -> ActionResult:
        """Run the state machine after the eligibility check passed."""
        credentials = self.store.load()
        self.credentials = credentials
        self.store.validate(credentials, self.required_fields)

        descriptor = self.build_request(credentials)
        response = self.http_client.execute(descriptor, self.settings.max_attempts)
        logger.info(f"{self.title} API response status: {response.status}")

        updates = self.handle_response(credentials, response)
        if updates:
            self.persist(updates)
        else:
            logger.info("No credential updates in response")

        result = ActionResult(
            status=ActionStatus.SUCCESS,
            updated_fields=list(updates),
            response_status=response.status,
        )
        self.on_success(credentials, result, format_israel_time(now))
        return result

    def run(self, now: Optional[datetime] = None) -> ActionResult:
        """
        Run the action once.

        Returns:
            ActionResult: Use result.exit_code as the process exit status
        """
        now = now or self.context.clock()
        logger.info(f"=== {self.title} Started at {format_israel_time(now)} ===")

        if self.is_blocked(now):
            if not self.settings.force:
                self.on_skipped(now)
                logger.info(f"=== {self.title} Skipped at {format_israel_time(now)} ===")
                return ActionResult(status=ActionStatus.SKIPPED)
            logger.warning("Blocked day ignored (--force)")

        self.credentials = None
        try:
            result = self.execute(now)
        except Exception as e:
            if isinstance(e, AutoloadError):
                logger.error(f"{self.title} failed: {e}")
            else:
                logger.error(f"{self.title} failed with unexpected error: {e}", exc_info=True)

            auth_error = is_auth_error(e)
            if auth_error:
                logger.error("Authentication error detected - tokens may need refresh")
                github_actions.set_output("auth_error", "true")
            github_actions.set_output("error", str(e))

            result = ActionResult(status=ActionStatus.FAILED, error=str(e), auth_error=auth_error)
            self.on_failure(self.credentials, result, format_israel_time(now))
            logger.info(f"=== {self.title} Failed at {format_israel_time(now)}: {e} ===")
            return result

        logger.info(f"=== {self.title} Completed at {format_israel_time(now)} ===")
        return result


def positive_int(value: str) -> int:
    """argparse type: an integer of at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def positive_float(value: str) -> float:
    """argparse type: a number greater than 0."""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def build_arg_parser(description: str, epilog: str = "") -> argparse.ArgumentParser:
    """Flags shared by every scheduled job."""
    parser = argparse.ArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    parser.add_argument(
        "--config",
        default="config.json",
        help="Path to the local credential file (default: config.json)"
    )
    parser.add_argument(
        "--log-dir",
        default="logs",
        help="Directory for log files (default: logs)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)"
    )
    parser.add_argument(
        "--max-attempts",
        type=positive_int,
        default=3,
        help="HTTP attempts before giving up (default: 3)"
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=30,
        help="Per-attempt HTTP timeout in seconds (default: 30)"
    )
    return parser
