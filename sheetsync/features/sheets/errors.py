"""
Google Sheets error classification.

Google API errors come back as:
    {"error": {"code": 403, "message": "...", "status": "PERMISSION_DENIED"}}
and OAuth token errors as:
    {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
"""

import json
from typing import Optional

from sheetsync.shared.errors import (
    ACCESS_DENIED,
    DECODE_ERROR,
    HTTP_ERROR,
    INVALID_REQUEST,
    NOT_FOUND,
    PERMISSION_DENIED,
    RATE_LIMITED,
    APIError,
    AuthError,
    NetworkError,
    ProviderError,
    SheetsError,
    is_reauth_error,
    matches_reauth_pattern,
    reauth_required,
)

PROVIDER = "google"

# Google API "status" values mapped onto our sheet error types
_STATUS_TYPES = {
    "PERMISSION_DENIED": PERMISSION_DENIED,
    "NOT_FOUND": NOT_FOUND,
    "INVALID_ARGUMENT": INVALID_REQUEST,
    "FAILED_PRECONDITION": INVALID_REQUEST,
    "RESOURCE_EXHAUSTED": RATE_LIMITED,
    "UNAUTHENTICATED": ACCESS_DENIED,
}


def _parse_body(body: str) -> Optional[dict]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def oauth_error_code(body: str) -> Optional[str]:
    """Structured OAuth error code ("invalid_grant", ...) if the body has one."""
    data = _parse_body(body)
    if not data:
        return None
    error = data.get("error")
    if isinstance(error, str):
        return error.lower()
    return None


def api_error_message(body: str) -> str:
    """Human readable message from a Google API error body."""
    data = _parse_body(body)
    if data and isinstance(data.get("error"), dict):
        return str(data["error"].get("message", ""))
    return (body or "")[:200]


def api_error_status(body: str) -> Optional[str]:
    data = _parse_body(body)
    if data and isinstance(data.get("error"), dict):
        return data["error"].get("status")
    return None


def is_refresh_token_rejected(body: str) -> bool:
    """Check a token endpoint error body for a dead refresh token."""
    if oauth_error_code(body) in ("invalid_grant", "token_revoked", "authorization_revoked"):
        return True
    return matches_reauth_pattern(body or "")


def classify_refresh_failure(status_code: int, body: str) -> ProviderError:
    """Map a failed refresh-token exchange to the error taxonomy."""
    if is_refresh_token_rejected(body):
        return reauth_required(
            PROVIDER,
            "Google refresh token is invalid, user must re-authorize",
            cause=APIError(PROVIDER, HTTP_ERROR, body[:500], status_code=status_code),
        )
    if status_code == 429:
        return APIError(PROVIDER, RATE_LIMITED, "Google token endpoint rate limit exceeded", status_code)
    return APIError(
        PROVIDER,
        HTTP_ERROR,
        f"Google token refresh failed: {body[:200]}",
        status_code,
    )


def classify_response(
    status_code: int,
    body: str,
    spreadsheet_id: str,
    operation: str,
) -> ProviderError:
    """Map a non-2xx Sheets API response to the error taxonomy."""
    if matches_reauth_pattern(body or ""):
        return reauth_required(
            PROVIDER,
            f"Google Sheets access requires re-authorization ({operation})",
            cause=APIError(PROVIDER, HTTP_ERROR, body[:500], status_code=status_code),
        )

    error_type = _STATUS_TYPES.get(api_error_status(body) or "")
    if error_type is None:
        error_type = {
            400: INVALID_REQUEST,
            401: ACCESS_DENIED,
            403: PERMISSION_DENIED,
            404: NOT_FOUND,
            429: RATE_LIMITED,
        }.get(status_code)

    message = api_error_message(body)

    if error_type == PERMISSION_DENIED:
        return SheetsError(
            spreadsheet_id, PERMISSION_DENIED,
            f"You don't have permission to access this spreadsheet ({message})",
            status_code,
        )
    if error_type == NOT_FOUND:
        return SheetsError(spreadsheet_id, NOT_FOUND, "Spreadsheet not found", status_code)
    if error_type == INVALID_REQUEST:
        return SheetsError(
            spreadsheet_id, INVALID_REQUEST, f"Invalid request format ({message})", status_code
        )
    if error_type == RATE_LIMITED:
        return APIError(PROVIDER, RATE_LIMITED, "Google Sheets API rate limit exceeded", status_code)
    if error_type == ACCESS_DENIED:
        return AuthError(PROVIDER, ACCESS_DENIED, "Google Sheets API access denied, token may be invalid", status_code)
    return APIError(
        PROVIDER,
        HTTP_ERROR,
        f"Google Sheets API error during {operation}: {status_code} {message}",
        status_code,
    )


def decode_error(status_code: int, cause: BaseException) -> APIError:
    return APIError(PROVIDER, DECODE_ERROR, "Failed to decode Sheets API response", status_code, cause)


def network_error(operation: str, cause: BaseException) -> NetworkError:
    return NetworkError(PROVIDER, operation, "Network error during Google request", cause)


def is_reauth_required(err: Optional[BaseException]) -> bool:
    """True when the error means the user must reconnect Google."""
    return is_reauth_error(err)
