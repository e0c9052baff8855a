"""
Extract rotated credentials from an API response.

The 10bis web API may hand out new tokens in several places. Header sources,
lowest to highest precedence:
    Set-Cookie: Authorization=...; RefreshToken=...
    Authorization: Bearer ...
    X-Access-Token / X-Refresh-Token

Body sources: "AccessToken", "RefreshToken" and "Amount" JSON fields.

Header values always win over body values for the same field, because the
headers carry the session identity the server will actually accept next.
"""

import logging
import re
from typing import Any, Dict, Tuple

from autoload.credential_store import ACCESS_TOKEN, AMOUNT, REFRESH_TOKEN
from autoload.http_client import HttpResponse

logger = logging.getLogger(__name__)

_COOKIE_PATTERNS = {
    ACCESS_TOKEN: re.compile(r"(?:^|[;,]\s*)Authorization=([^;,\s]+)"),
    REFRESH_TOKEN: re.compile(r"(?:^|[;,]\s*)RefreshToken=([^;,\s]+)"),
}
_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def tokens_from_headers(response: HttpResponse) -> Dict[str, str]:
    """Collect token values from cookies and custom headers."""
    tokens: Dict[str, str] = {}

    for cookie in response.set_cookies:
        for field_name, pattern in _COOKIE_PATTERNS.items():
            match = pattern.search(cookie)
            if match:
                tokens[field_name] = match.group(1)
                logger.info(f"{field_name} extracted from Set-Cookie header")

    authorization = response.headers.get("Authorization")
    if authorization:
        tokens[ACCESS_TOKEN] = _BEARER_PREFIX.sub("", authorization.strip())
        logger.info("AccessToken extracted from Authorization header")

    if response.headers.get("X-Access-Token"):
        tokens[ACCESS_TOKEN] = response.headers["X-Access-Token"]
        logger.info("AccessToken extracted from X-Access-Token header")

    if response.headers.get("X-Refresh-Token"):
        tokens[REFRESH_TOKEN] = response.headers["X-Refresh-Token"]
        logger.info("RefreshToken extracted from X-Refresh-Token header")

    return tokens


def tokens_from_body(response: HttpResponse) -> Dict[str, Any]:
    """Collect token values (and Amount) from a JSON object body."""
    body = response.body
    if not isinstance(body, dict):
        if body is None:
            logger.info("No response data received")
        return {}

    logger.info(f"Response data keys: {', '.join(body) or '(none)'}")
    tokens: Dict[str, Any] = {}
    for field_name in (ACCESS_TOKEN, REFRESH_TOKEN):
        if body.get(field_name):
            tokens[field_name] = body[field_name]
            logger.info(f"{field_name} found in response body")
    if body.get(AMOUNT) is not None:
        tokens[AMOUNT] = body[AMOUNT]
        logger.info("Amount updated from response")
    return tokens


def extract_token_update(response: HttpResponse) -> Tuple[Dict[str, Any], Dict[str, int]]:
    """
    Build the partial credential set carried by a response.

    Returns:
        (updates, counts): merged updates (headers win) and how many fields
        came from each place, e.g. {"headers": 1, "body": 2}
    """
    header_tokens = tokens_from_headers(response)
    body_tokens = tokens_from_body(response)
    updates = {**body_tokens, **header_tokens}
    return updates, {"headers": len(header_tokens), "body": len(body_tokens)}
