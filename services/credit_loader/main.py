#!/usr/bin/env python3
"""
Credit Loader Job - Scheduled 10bis balance top-up

Loads the configured Amount onto the moneycard once per working day.

How It Works:
-------------
1. Skip on Friday and Saturday (Israel time) - the 10bis week is Sunday to
   Thursday and the API refuses loads on the weekend. A skipped run makes no
   API call, writes nothing and exits 0.
2. Load and validate AccessToken, RefreshToken, Amount and MoneycardId
3. PATCH /Payments/LoadTenbisCredit with bearer + cookie authentication
4. Notify success or failure (Teams webhook / Teams chat / Pub/Sub)

A 401 is reported as an authentication error: run the token refresh job.

Usage:
------
    python -m services.credit_loader.main            # Load credit
    python -m services.credit_loader.main --test     # Check configuration only
    python -m services.credit_loader.main --force    # Ignore the weekend skip

Exit code 0 on success or weekend skip, 1 on any failure.
"""

import os
import sys
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

# Ensure project root is in path for imports when running as script
_project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from autoload import github_actions
from autoload.config_loader import ActionContext, AppSettings, ConfigLoader
from autoload.credential_store import ACCESS_TOKEN, AMOUNT, MONEYCARD_ID, REFRESH_TOKEN
from autoload.exceptions import AutoloadError
from autoload.http_client import HttpResponse, RequestDescriptor
from autoload.scheduled_action import (
    WEB_CLIENT_HEADERS,
    ActionResult,
    ScheduledAction,
    build_arg_parser,
)
from autoload.schedule import is_weekend, weekday_name

logger = logging.getLogger(__name__)

LOAD_CREDIT_PATH = "Payments/LoadTenbisCredit"
TENBIS_ORIGIN = "https://www.10bis.co.il"

# Analytics cookies the web client sends alongside the session cookie
ANALYTICS_COOKIES = "_gcl_au=1.1.283592624.1745399880; _ga=GA1.1.901790421.1745399881"


class CreditLoadAction(ScheduledAction):
    """Loads Amount onto the moneycard."""

    title = "Credit Loading"
    bot_name = "CREDIT_LOADER"
    log_file = "credit.log"
    required_fields = (ACCESS_TOKEN, REFRESH_TOKEN, AMOUNT, MONEYCARD_ID)

    def is_blocked(self, now: datetime) -> bool:
        return is_weekend(now, self.settings.weekend_days)

    def on_skipped(self, now: datetime) -> None:
        logger.info(f"Skipping credit loading - today is weekend ({weekday_name(now)})")
        github_actions.set_output("credit_loaded", "skipped_weekend")

    def build_request(self, credentials: Dict[str, Any]) -> RequestDescriptor:
        access_token = credentials[ACCESS_TOKEN]
        refresh_token = credentials[REFRESH_TOKEN]

        headers = dict(WEB_CLIENT_HEADERS)
        headers.update({
            "Authorization": f"Bearer {access_token}",
            "Origin": TENBIS_ORIGIN,
            "Cookie": f"{ANALYTICS_COOKIES}; Authorization={access_token}; RefreshToken={refresh_token}",
        })

        logger.info(
            f"Attempting to load credit: Amount={credentials[AMOUNT]}, "
            f"MoneycardId={credentials[MONEYCARD_ID]}"
        )
        return RequestDescriptor(
            method="PATCH",
            url=self.url(LOAD_CREDIT_PATH),
            headers=headers,
            json_body={
                "amount": credentials[AMOUNT],
                "moneycardIdToCharge": credentials[MONEYCARD_ID],
            },
            timeout=self.settings.request_timeout,
        )

    def handle_response(self, credentials: Dict[str, Any], response: HttpResponse) -> Dict[str, Any]:
        if response.body is None:
            logger.info("Credit loading completed - no response data")
            github_actions.set_output("credit_loaded", "no_response_data")
            return {}

        logger.info(f"Credit loading response: {json.dumps(response.body, ensure_ascii=False, default=str)}")
        if response.status in (200, 201):
            logger.info("Credit loaded successfully!")
            github_actions.set_output("credit_loaded", "success")
            github_actions.set_output("amount_loaded", credentials[AMOUNT])
        else:
            logger.warning(f"Unexpected response status: {response.status}")
            github_actions.set_output("credit_loaded", "unexpected_status")
            github_actions.set_output("response_status", response.status)
        return {}

    def on_success(self, credentials: Dict[str, Any], result: ActionResult, timestamp: str) -> None:
        self.context.alerts_for(credentials, self.bot_name).credit_loaded(credentials.get(AMOUNT), timestamp)

    def on_failure(self, credentials: Optional[Dict[str, Any]], result: ActionResult, timestamp: str) -> None:
        github_actions.set_output("credit_loaded", "failed")
        amount = (credentials or {}).get(AMOUNT)
        self.context.alerts_for(credentials, self.bot_name).credit_load_failed(
            amount, timestamp, result.error, auth_error=result.auth_error
        )


def check_configuration(context: ActionContext) -> bool:
    """
    Check the credit loading configuration without calling the API.

    Token values are never printed, only whether they are present.
    """
    logger.info("Testing configuration for credit loading")
    try:
        credentials = context.store.load()
        context.store.validate(credentials, CreditLoadAction.required_fields)
    except AutoloadError as e:
        logger.error(f"Configuration test failed: {e}")
        github_actions.set_output("config_test", "failed")
        github_actions.set_output("config_error", str(e))
        return False

    logger.info("Configuration test passed - all required fields present")
    logger.info(f"Amount: {credentials[AMOUNT]}")
    logger.info(f"MoneycardId: {credentials[MONEYCARD_ID]}")
    logger.info(f"AccessToken: {'Present' if credentials.get(ACCESS_TOKEN) else 'Missing'}")
    logger.info(f"RefreshToken: {'Present' if credentials.get(REFRESH_TOKEN) else 'Missing'}")
    github_actions.set_output("config_test", "passed")
    return True


def main(argv=None):
    """Entry point for the credit loader job."""
    parser = build_arg_parser(
        description="Load 10bis credit onto the configured moneycard",
        epilog=(
            "Examples:\n"
            "  python -m services.credit_loader.main\n"
            "  python -m services.credit_loader.main --test\n"
        ),
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Validate the configuration without calling the API"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Load credit even on a weekend day"
    )
    args = parser.parse_args(argv)

    settings = AppSettings.from_args(args)
    try:
        context = ConfigLoader(settings).build_context(log_file=CreditLoadAction.log_file)
    except Exception as e:
        logger.error(f"Failed to initialize credit loader: {e}", exc_info=True)
        sys.exit(1)

    try:
        if args.test:
            sys.exit(0 if check_configuration(context) else 1)
        result = CreditLoadAction(context).run()
    finally:
        context.close()

    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
