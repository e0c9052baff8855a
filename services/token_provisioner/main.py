#!/usr/bin/env python3
"""
Token Provisioner - One-shot storage of new 10bis tokens

When the refresh token has expired (the refresh job keeps failing with 401),
the only way back is a manual browser login. This utility takes the new
cookie values copied from the browser and stores them where the scheduled jobs
read them:

    GCP Secret Manager  (default when running on GCP or with --cloud)
    config.json         (--config PATH, local cron setup)

The previous credential set is backed up before it is overwritten, exactly as
the scheduled jobs do.

Where to find the values:
    Browser DevTools > Application > Storage > Cookies > https://www.10bis.co.il
        Authorization  -> AccessToken
        RefreshToken   -> RefreshToken

Usage:
------
    python -m services.token_provisioner.main                   # Prompt and store
    python -m services.token_provisioner.main --cloud           # Force Secret Manager
    python -m services.token_provisioner.main --test-notifications
"""

import os
import sys
import getpass
import logging

# Ensure project root is in path for imports when running as script
_project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from autoload.alert_service import AlertService
from autoload.credential_store import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    CredentialStore,
    FileCredentialSource,
    SecretManagerCredentialSource,
)
from autoload.exceptions import AutoloadError
from autoload.logger_service import setup_logging
from autoload.schedule import format_israel_time
from autoload.secret_manager import get_project_id, is_running_on_gcp

logger = logging.getLogger(__name__)


def prompt_tokens(prompt=getpass.getpass) -> dict:
    """
    Ask for the two cookie values (input hidden).

    Returns:
        dict: {"AccessToken": ..., "RefreshToken": ...}, or {} if either is blank
    """
    print("\n=== 10bis Token Update ===")
    print("Paste the cookie values from your browser:")
    print("(Application > Storage > Cookies > https://www.10bis.co.il)\n")

    access_token = prompt("Enter AccessToken (Authorization cookie value): ").strip()
    if not access_token:
        print("❌ AccessToken is required")
        return {}

    refresh_token = prompt("Enter RefreshToken (RefreshToken cookie value): ").strip()
    if not refresh_token:
        print("❌ RefreshToken is required")
        return {}

    return {ACCESS_TOKEN: access_token, REFRESH_TOKEN: refresh_token}


def build_store(config_path: str, use_cloud: bool, on_secret=None) -> CredentialStore:
    """Store writing to exactly one destination (no environment source)."""
    source = SecretManagerCredentialSource() if use_cloud else FileCredentialSource(config_path)
    return CredentialStore([source], on_secret=on_secret)


def provision(store: CredentialStore, tokens: dict) -> bool:
    """Merge the new tokens into the stored credential set."""
    if not tokens:
        return False
    try:
        store.save(tokens)
    except AutoloadError as e:
        logger.error(f"Failed to store tokens: {e}")
        print(f"❌ Failed to store tokens: {e}")
        return False

    destination = store.sources[0].name
    print(f"✅ Tokens stored ({destination})")
    print("Updated fields:")
    for field_name in tokens:
        print(f"  - {field_name}")
    return True


def send_test_notification(config_path: str, use_cloud: bool) -> bool:
    """Send a sample success card through every configured channel."""
    store = build_store(config_path, use_cloud)
    try:
        credentials = store.load()
    except AutoloadError as e:
        logger.error(f"Cannot load notification settings: {e}")
        return False

    alert_service = AlertService.from_credentials(
        credentials, "TOKEN_PROVISIONER", project_id=get_project_id() if use_cloud else None
    )
    if not alert_service.channels:
        logger.error("No notification channel configured (TeamsWebhookUrl or Teams* app fields)")
        return False

    logger.info("Testing notification channels...")
    return alert_service.test_connection(format_israel_time())


def main(argv=None):
    """Entry point for the token provisioner."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Store new 10bis tokens copied from the browser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        default="config.json",
        help="Local credential file (default: config.json)"
    )
    parser.add_argument(
        "--cloud",
        action="store_true",
        help="Write to GCP Secret Manager even if GCP is not detected"
    )
    parser.add_argument(
        "--test-notifications",
        action="store_true",
        help="Send a sample notification instead of storing tokens"
    )
    args = parser.parse_args(argv)

    masking_filter = setup_logging(log_dir="logs", log_file="provisioner.log")
    use_cloud = args.cloud or is_running_on_gcp()

    if args.test_notifications:
        sys.exit(0 if send_test_notification(args.config, use_cloud) else 1)

    tokens = prompt_tokens()
    store = build_store(args.config, use_cloud, on_secret=masking_filter.add_secret)
    sys.exit(0 if provision(store, tokens) else 1)


if __name__ == "__main__":
    main()
