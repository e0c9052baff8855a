"""
Token Refresh Job

Rotates the 10bis AccessToken/RefreshToken pair and stores the new values.

Why It's Needed:
----------------
- The API rotates the refresh token; the old one stops working
- An expired refresh token can only be replaced by a manual browser login
  (see services.token_provisioner)

Usage:
------
    python -m services.token_refresh.main
    python -m services.token_refresh.main --dry-run
"""

from services.token_refresh.main import (
    TokenRefreshAction,
    REFRESH_TOKEN_PATH,
)

__all__ = [
    'TokenRefreshAction',
    'REFRESH_TOKEN_PATH',
]
