"""
Exceptions raised by the autoload core.

Every failure of a scheduled action is an AutoloadError subclass, so entry
points can turn any of them into exit code 1 with a single except clause.

Retry classification:
    ClientError             4xx response - terminal, never retried
    ServerOrNetworkError    5xx, connection error, timeout - retried
    RetriesExhaustedError   retry budget spent on ServerOrNetworkError
"""

from typing import Any, Iterable, List, Optional


class AutoloadError(Exception):
    """Base class for all autoload failures."""


class ConfigurationMissingError(AutoloadError):
    """No backing source yielded a credential set."""


class ValidationError(AutoloadError):
    """One or more required credential fields are absent or blank."""

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields: List[str] = list(missing_fields)
        super().__init__(
            f"Missing required configuration fields: {', '.join(self.missing_fields)}"
        )


class ClientError(AutoloadError):
    """The remote API answered with a 4xx status."""

    def __init__(self, status: int, body: Any = None, reason: str = ""):
        self.status = status
        self.body = body
        self.reason = reason
        message = f"HTTP {status}"
        if reason:
            message += f": {reason}"
        if body:
            message += f" - {body}"
        super().__init__(message)


class ServerOrNetworkError(AutoloadError):
    """A retryable failure: 5xx status, connection error or timeout."""

    def __init__(self, cause: Any, status: Optional[int] = None):
        self.cause = cause
        self.status = status
        super().__init__(str(cause))


class RetriesExhaustedError(AutoloadError):
    """Every attempt ended in a ServerOrNetworkError."""

    def __init__(self, last_cause: ServerOrNetworkError, attempts: int):
        self.last_cause = last_cause
        self.attempts = attempts
        super().__init__(f"All {attempts} attempts failed. Last error: {last_cause}")


class SecretManagerError(AutoloadError):
    """Secret Manager could not be reached or refused the request."""


class PersistenceError(AutoloadError):
    """Backing up or writing the credential set failed."""

    def __init__(self, cause: Any):
        self.cause = cause
        super().__init__(f"Failed to persist credentials: {cause}")


def is_auth_error(error: BaseException) -> bool:
    """
    Check whether a failure looks like an authentication problem.

    A 401 status, or "401"/"Unauthorized" anywhere in the message, means the
    access token was rejected and the token refresh job should run.
    """
    if isinstance(error, ClientError) and error.status == 401:
        return True
    message = str(error)
    return "401" in message or "Unauthorized" in message
