"""
Token Provisioner

Manual recovery tool: stores tokens copied from a browser session when the
refresh token has expired.

Usage:
------
    python -m services.token_provisioner.main
    python -m services.token_provisioner.main --test-notifications
"""

from services.token_provisioner.main import (
    prompt_tokens,
    provision,
    send_test_notification,
)

__all__ = [
    'prompt_tokens',
    'provision',
    'send_test_notification',
]
