#!/usr/bin/env python3
"""
Token Refresh Job - Keeps the 10bis session tokens fresh

The 10bis web API rotates its session tokens: every refresh call may hand out
a new AccessToken and RefreshToken, and the old refresh token stops working.
This job calls the refresh endpoint on a schedule and stores whatever new
tokens come back, so the credit loader always finds a valid session.

How It Works:
-------------
1. Load credentials (environment, Secret Manager or config.json)
2. POST /Authentication/RefreshToken with the current refresh token
   (plus the session cookie when both tokens are known)
3. Extract new tokens from Set-Cookie / Authorization / X-*-Token headers
   and the JSON body (header values win)
4. Save them (config.json gets a .backup first; in GitHub Actions they become
   masked step outputs for the workflow to store as secrets)

No new tokens in the response is logged as a warning but is not a failure.

Usage:
------
    python -m services.token_refresh.main               # Refresh and persist
    python -m services.token_refresh.main --dry-run     # Refresh, persist nothing
    python -m services.token_refresh.main --config /opt/tenbis/config.json

Exit code 0 on success, 1 on any failure (for cron monitoring).
"""

import os
import sys
import logging
from typing import Any, Dict, Optional

# Ensure project root is in path for imports when running as script
_project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from autoload import github_actions
from autoload.config_loader import AppSettings, ConfigLoader
from autoload.credential_store import ACCESS_TOKEN, REFRESH_TOKEN
from autoload.http_client import HttpResponse, RequestDescriptor
from autoload.logger_service import preview
from autoload.scheduled_action import (
    WEB_CLIENT_HEADERS,
    ActionResult,
    ScheduledAction,
    build_arg_parser,
)
from autoload.token_extraction import extract_token_update

logger = logging.getLogger(__name__)

REFRESH_TOKEN_PATH = "Authentication/RefreshToken"


class TokenRefreshAction(ScheduledAction):
    """Rotates AccessToken/RefreshToken via the refresh endpoint."""

    title = "Token Refresh"
    bot_name = "TOKEN_REFRESH"
    log_file = "refresh.log"
    required_fields = (REFRESH_TOKEN,)

    def build_request(self, credentials: Dict[str, Any]) -> RequestDescriptor:
        access_token = credentials.get(ACCESS_TOKEN)
        refresh_token = credentials[REFRESH_TOKEN]

        logger.info(f"Current AccessToken: {preview(access_token)}")
        logger.info(f"Current RefreshToken: {preview(refresh_token)}")

        headers = dict(WEB_CLIENT_HEADERS)
        if access_token and refresh_token:
            headers["Cookie"] = f"Authorization={access_token}; RefreshToken={refresh_token}"

        logger.info("Making refresh token request to 10bis API")
        return RequestDescriptor(
            method="POST",
            url=self.url(REFRESH_TOKEN_PATH),
            headers=headers,
            json_body={"refreshToken": refresh_token},
            timeout=self.settings.request_timeout,
        )

    def handle_response(self, credentials: Dict[str, Any], response: HttpResponse) -> Dict[str, Any]:
        logger.info("Response received, extracting tokens from headers/cookies")
        updates, counts = extract_token_update(response)

        if not updates:
            logger.warning("No token updates received from API (neither headers nor body)")
            logger.warning("This might indicate the refresh token is invalid or expired")
            github_actions.set_output("tokens_updated", "false")
            return {}

        logger.info(f"Tokens extracted - Headers: {counts['headers']}, Body: {counts['body']}")

        for field_name in (ACCESS_TOKEN, REFRESH_TOKEN):
            if field_name in updates:
                changed = updates[field_name] != credentials.get(field_name)
                logger.info(f"{field_name} changed: {changed}")
                if changed:
                    logger.info(
                        f"{field_name} changed from {preview(credentials.get(field_name))} "
                        f"to {preview(updates[field_name])}"
                    )

        return updates

    def on_success(self, credentials: Dict[str, Any], result: ActionResult, timestamp: str) -> None:
        if result.updated_fields:
            if not self.settings.dry_run:
                github_actions.set_output("tokens_updated", "true")
            logger.info(
                f"Token refresh completed successfully. Updated fields: {', '.join(result.updated_fields)}"
            )
        self.context.alerts_for(credentials, self.bot_name).tokens_refreshed(result.updated_fields, timestamp)

    def on_failure(self, credentials: Optional[Dict[str, Any]], result: ActionResult, timestamp: str) -> None:
        github_actions.set_output("tokens_updated", "false")
        self.context.alerts_for(credentials, self.bot_name).token_refresh_failed(
            timestamp, result.error, auth_error=result.auth_error
        )


def main(argv=None):
    """Entry point for the token refresh job."""
    parser = build_arg_parser(
        description="Refresh 10bis session tokens and persist the rotated values",
        epilog=(
            "Examples:\n"
            "  python -m services.token_refresh.main\n"
            "  python -m services.token_refresh.main --dry-run\n"
        ),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Call the refresh endpoint and log the extracted fields without persisting them"
    )
    args = parser.parse_args(argv)

    settings = AppSettings.from_args(args)
    try:
        context = ConfigLoader(settings).build_context(log_file=TokenRefreshAction.log_file)
    except Exception as e:
        logger.error(f"Failed to initialize token refresh: {e}", exc_info=True)
        sys.exit(1)

    try:
        result = TokenRefreshAction(context).run()
    finally:
        context.close()

    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
