"""
Failure classification for Google API calls.

Every failure coming back from the Google client is sorted into one of four
classes by classify_error(). Callers branch on the class, never on raw status
codes or message strings:

  AUTH        credential is invalid, expired, revoked or missing. Escalate, never retry.
  TRANSIENT   network trouble or provider overload. Retry with backoff.
  VALIDATION  the request itself is wrong. Surface to the caller.
  UNKNOWN     anything else. Terminal, not retried.

The tables below are the only place provider codes and messages are listed.
"""

import enum
from typing import Optional

import httpx


class ErrorClass(str, enum.Enum):
    AUTH = "auth"
    TRANSIENT = "transient"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """
    A failed call to Google (OAuth endpoints or the Gmail API).

    Attributes:
        message: human-readable description, usually the provider's own text
        status:  HTTP status code, when the failure was an HTTP response
        code:    OAuth error code (e.g. "invalid_grant") or a network code
                 (e.g. "ETIMEDOUT")
    """

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def __repr__(self) -> str:
        return f"ProviderError({self.message!r}, status={self.status!r}, code={self.code!r})"


class CredentialMissing(ProviderError):
    """No refresh token is loaded. Always auth-class."""

    def __init__(self, message: str = "No refresh token available - re-authorization required"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Classification tables
# ---------------------------------------------------------------------------

AUTH_CODES = frozenset({
    "invalid_grant",
    "invalid_request",
    "unauthorized_client",
    "access_denied",
    "invalid_scope",
})

AUTH_STATUSES = frozenset({401, 403})

AUTH_MESSAGES = (
    "token has been expired or revoked",
    "invalid_grant",
    "unauthorized",
    "forbidden",
    "invalid refresh token",
    "refresh token expired",
)

TRANSIENT_CODES = frozenset({
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "EAI_AGAIN",
    # Gmail reports per-user throttling as 403 with these reasons
    "rateLimitExceeded",
    "userRateLimitExceeded",
})

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503})

TRANSIENT_MESSAGES = (
    "timeout",
    "network",
    "quota",
)

VALIDATION_STATUSES = frozenset({400, 404, 422})


def _network_code(exc: httpx.TransportError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(exc, httpx.ConnectError):
        return "ENOTFOUND"
    return "ECONNRESET"


def from_transport_error(exc: httpx.TransportError) -> ProviderError:
    """Wrap an httpx network-level failure in a ProviderError with a network code."""
    return ProviderError(f"network error: {exc}", code=_network_code(exc))


def classify_error(exc: BaseException) -> ErrorClass:
    """
    Map an exception to its ErrorClass.

    Explicit error codes are checked first, then status codes, then message
    fragments. Within each tier auth signals win over transient ones.
    """
    if isinstance(exc, httpx.TransportError):
        return ErrorClass.TRANSIENT

    if isinstance(exc, CredentialMissing):
        return ErrorClass.AUTH

    if isinstance(exc, ProviderError):
        code = exc.code or ""
        status = exc.status
        message = (exc.message or "").lower()

        if code in AUTH_CODES:
            return ErrorClass.AUTH
        if code in TRANSIENT_CODES:
            return ErrorClass.TRANSIENT

        if status in AUTH_STATUSES:
            return ErrorClass.AUTH
        if status in TRANSIENT_STATUSES:
            return ErrorClass.TRANSIENT

        if any(fragment in message for fragment in AUTH_MESSAGES):
            return ErrorClass.AUTH
        if any(fragment in message for fragment in TRANSIENT_MESSAGES):
            return ErrorClass.TRANSIENT

        if status in VALIDATION_STATUSES:
            return ErrorClass.VALIDATION
        return ErrorClass.UNKNOWN

    if isinstance(exc, ValueError):
        return ErrorClass.VALIDATION

    message = str(exc).lower()
    if any(fragment in message for fragment in AUTH_MESSAGES):
        return ErrorClass.AUTH
    if any(fragment in message for fragment in TRANSIENT_MESSAGES):
        return ErrorClass.TRANSIENT
    return ErrorClass.UNKNOWN


def is_auth_error(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorClass.AUTH


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorClass.TRANSIENT
