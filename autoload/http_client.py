"""
http_client.py - Resilient HTTP client for the 10bis web API

Executes one logical HTTP operation with bounded retries:
- Status < 400 is a success and is returned immediately
- Status 400-499 is terminal (ClientError) and is never retried, because an
  authentication or validation failure cannot succeed on a second try
- Status >= 500, connection errors and timeouts are retried with exponential
  backoff: 2s, 4s, 8s, ... (2 ** attempt, attempt starting at 1)

At most max_attempts network calls are issued per execute() call. Every
attempt is logged through the module logger; the client never owns log
storage itself.

Usage:
    descriptor = RequestDescriptor(
        method="POST",
        url="https://api.10bis.co.il/api/v1/Authentication/RefreshToken",
        headers={"Content-Type": "application/json"},
        json_body={"refreshToken": "..."},
    )
    with ResilientHttpClient() as client:
        response = client.execute(descriptor, max_attempts=3)
"""

import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional

import requests
from requests.structures import CaseInsensitiveDict

from autoload.exceptions import ClientError, RetriesExhaustedError, ServerOrNetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds, per attempt
DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Everything needed to issue one request attempt.

    Headers are stored in a case-insensitive mapping; passing two names that
    differ only in case is rejected, since the server would see a duplicate.
    """
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    json_body: Optional[Any] = None
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        merged = CaseInsensitiveDict()
        for name, value in dict(self.headers).items():
            if name in merged:
                raise ValueError(f"Duplicate header: {name}")
            merged[name] = value
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(merged))


@dataclass
class HttpResponse:
    """A successful (status < 400) attempt outcome."""
    status: int
    headers: CaseInsensitiveDict
    body: Any = None
    set_cookies: List[str] = field(default_factory=list)
    reason: str = ""


def _safe_body(response: requests.Response) -> Any:
    """Parse a JSON body, falling back to raw text (None when empty)."""
    if not response.text:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _set_cookie_values(response: requests.Response) -> List[str]:
    """
    Return each Set-Cookie header separately.

    requests folds repeated headers into one comma-joined value, so prefer the
    urllib3 header list when the raw response carries one.
    """
    raw_headers = getattr(getattr(response, "raw", None), "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        values = raw_headers.getlist("Set-Cookie")
        if isinstance(values, list) and values:
            return values

    header = response.headers.get("Set-Cookie")
    return [header] if header else []


class ResilientHttpClient:
    """
    HTTP client with retry and exponential backoff.

    Args:
        session: Optional requests.Session (one is created if omitted)
        sleep: Function used for the backoff wait (default time.sleep)
        backoff_base: Base of the exponential backoff in seconds (default 2)
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        backoff_base: float = 2,
    ):
        self._session = session or requests.Session()
        self._owns_session = session is None
        self._sleep = sleep
        self.backoff_base = backoff_base

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Close the underlying session if this client created it."""
        if self._owns_session:
            self._session.close()

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after a failed attempt (attempt starts at 1)."""
        return self.backoff_base ** attempt

    def _attempt(self, descriptor: RequestDescriptor) -> HttpResponse:
        """Issue one request and classify the result."""
        try:
            response = self._session.request(
                method=descriptor.method,
                url=descriptor.url,
                headers=dict(descriptor.headers),
                json=descriptor.json_body,
                timeout=descriptor.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise ServerOrNetworkError(f"Request timeout: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ServerOrNetworkError(f"Request error: {e}") from e

        status = response.status_code
        if status >= 500:
            raise ServerOrNetworkError(
                f"HTTP {status}: {response.reason or 'Server Error'}", status=status
            )
        if status >= 400:
            raise ClientError(status, _safe_body(response), reason=response.reason or "")

        return HttpResponse(
            status=status,
            headers=CaseInsensitiveDict(response.headers),
            body=_safe_body(response),
            set_cookies=_set_cookie_values(response),
            reason=response.reason or "",
        )

    def execute(
        self,
        descriptor: RequestDescriptor,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> HttpResponse:
        """
        Execute a request with retry.

        Args:
            descriptor: The request to issue
            max_attempts: Total attempts allowed (>= 1)

        Returns:
            HttpResponse for the first attempt with status < 400

        Raises:
            ClientError: On a 4xx response (no retry)
            RetriesExhaustedError: When every attempt failed retryably
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        last_error: Optional[ServerOrNetworkError] = None

        for attempt in range(1, max_attempts + 1):
            logger.info(
                f"HTTP attempt {attempt}/{max_attempts}: {descriptor.method} {descriptor.url}"
            )
            try:
                response = self._attempt(descriptor)
            except ClientError as e:
                logger.error(
                    f"HTTP attempt {attempt}/{max_attempts} failed (not retryable): "
                    f"{descriptor.method} {descriptor.url} - {e}"
                )
                raise
            except ServerOrNetworkError as e:
                last_error = e
                logger.warning(
                    f"HTTP attempt {attempt}/{max_attempts} failed: "
                    f"{descriptor.method} {descriptor.url} - {e}"
                )
                if attempt < max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.info(f"Waiting {delay:g}s before retry...")
                    self._sleep(delay)
                continue

            logger.info(
                f"HTTP attempt {attempt}/{max_attempts} succeeded: "
                f"{descriptor.method} {descriptor.url} -> {response.status}"
            )
            return response

        logger.error(f"HTTP request failed after {max_attempts} attempts: {last_error}")
        raise RetriesExhaustedError(last_error, max_attempts)
