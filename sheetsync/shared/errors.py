"""
Provider error taxonomy.

Every failure talking to Strava or Google is raised as one of these
exceptions, classified once inside the client that saw it.

Hierarchy:
- ProviderError
  - AuthError        (ACCESS_DENIED, FORBIDDEN, REAUTH_REQUIRED)
  - APIError         (RATE_LIMITED, HTTP_ERROR, DECODE_ERROR)
  - NetworkError     (transport failure during an operation)
  - SheetsError      (PERMISSION_DENIED, NOT_FOUND, INVALID_REQUEST)
"""

from typing import Optional


# Error types
ACCESS_DENIED = "ACCESS_DENIED"
FORBIDDEN = "FORBIDDEN"
REAUTH_REQUIRED = "REAUTH_REQUIRED"
RATE_LIMITED = "RATE_LIMITED"
HTTP_ERROR = "HTTP_ERROR"
DECODE_ERROR = "DECODE_ERROR"
PERMISSION_DENIED = "PERMISSION_DENIED"
NOT_FOUND = "NOT_FOUND"
INVALID_REQUEST = "INVALID_REQUEST"
NETWORK_ERROR = "NETWORK_ERROR"

# Substrings in OAuth error text that mean the refresh token is dead
REAUTH_PATTERNS = (
    "invalid_grant",
    "invalid refresh token",
    "refresh token is invalid",
    "authorization_revoked",
    "token_revoked",
)


class ProviderError(Exception):
    """Base error for external provider calls."""

    kind = "provider"

    def __init__(
        self,
        provider: str,
        type: str,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.provider = provider
        self.type = type
        self.message = message
        self.status_code = status_code
        self.cause = cause
        super().__init__(self._format())

    def _format(self) -> str:
        status = f"status {self.status_code}, " if self.status_code else ""
        text = f"{self.provider} {self.kind} error ({status}type {self.type}): {self.message}"
        if self.cause is not None:
            text += f" (caused by: {self.cause})"
        return text

    @property
    def is_rate_limited(self) -> bool:
        return self.type == RATE_LIMITED


class AuthError(ProviderError):
    """Authentication/authorization error."""

    kind = "auth"


class APIError(ProviderError):
    """Provider API returned an error or an unreadable response."""

    kind = "api"


class NetworkError(ProviderError):
    """Transport failure while talking to the provider."""

    kind = "network"

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        self.operation = operation
        super().__init__(provider, NETWORK_ERROR, f"{operation}: {message}", cause=cause)


class SheetsError(ProviderError):
    """Google Sheets specific failure tied to one spreadsheet."""

    kind = "sheets"

    def __init__(
        self,
        spreadsheet_id: str,
        type: str,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        super().__init__(
            "google",
            type,
            f"spreadsheet {spreadsheet_id}: {message}",
            status_code=status_code,
            cause=cause,
        )


def reauth_required(provider: str, message: str, cause: Optional[BaseException] = None) -> AuthError:
    """Build the distinguished re-authorization error for a provider."""
    return AuthError(provider, REAUTH_REQUIRED, message, cause=cause)


def matches_reauth_pattern(text: str) -> bool:
    """Check free-form error text for refresh-token rejection markers."""
    lowered = text.lower()
    return any(pattern in lowered for pattern in REAUTH_PATTERNS)


def is_reauth_error(err: Optional[BaseException]) -> bool:
    """
    Check whether an error means the user has to reconnect the provider.

    Walks the cause chain, so wrapped errors are recognised too.
    """
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, AuthError) and err.type == REAUTH_REQUIRED:
            return True
        if matches_reauth_pattern(str(err)):
            return True
        err = getattr(err, "cause", None) or err.__cause__
    return False
