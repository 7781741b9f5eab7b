"""
Strava error classification.

All mapping from Strava HTTP responses to the shared error taxonomy lives
here, so it can be checked against sample provider bodies in one place.
"""

import json
from typing import Optional

from sheetsync.shared.errors import (
    ACCESS_DENIED,
    DECODE_ERROR,
    FORBIDDEN,
    HTTP_ERROR,
    RATE_LIMITED,
    APIError,
    AuthError,
    NetworkError,
    ProviderError,
    is_reauth_error,
    matches_reauth_pattern,
    reauth_required,
)

PROVIDER = "strava"


def _parse_body(body: str) -> Optional[dict]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def is_refresh_token_rejected(body: str) -> bool:
    """
    Check a token endpoint error body for a dead refresh token.

    Strava answers a revoked or unknown refresh token with:
        {"message": "Bad Request",
         "errors": [{"resource": "RefreshToken", "field": "refresh_token",
                     "code": "invalid"}]}
    Standard OAuth bodies ({"error": "invalid_grant"}) and free-text
    markers are accepted too.
    """
    data = _parse_body(body)
    if data:
        if str(data.get("error", "")).lower() in ("invalid_grant", "token_revoked"):
            return True
        for item in data.get("errors") or []:
            if not isinstance(item, dict):
                continue
            field = str(item.get("field", "")).lower()
            resource = str(item.get("resource", "")).lower()
            if (field == "refresh_token" or resource == "refreshtoken") and item.get("code") == "invalid":
                return True
    return matches_reauth_pattern(body or "")


def classify_refresh_failure(status_code: int, body: str) -> ProviderError:
    """Map a failed refresh-token exchange to the error taxonomy."""
    if is_refresh_token_rejected(body):
        return reauth_required(
            PROVIDER,
            "Strava refresh token is invalid, user must re-authorize",
            cause=APIError(PROVIDER, HTTP_ERROR, body[:500], status_code=status_code),
        )
    if status_code == 429:
        return APIError(PROVIDER, RATE_LIMITED, "Strava token endpoint rate limit exceeded", status_code)
    return APIError(
        PROVIDER,
        HTTP_ERROR,
        f"Strava token refresh failed: {body[:200]}",
        status_code,
    )


def classify_response(status_code: int, body: str = "") -> ProviderError:
    """Map a non-2xx Strava API response to the error taxonomy."""
    if status_code == 401:
        return AuthError(PROVIDER, ACCESS_DENIED, "Strava API access denied, token may be invalid", status_code)
    if status_code == 403:
        return AuthError(PROVIDER, FORBIDDEN, "Strava API access forbidden, insufficient permissions", status_code)
    if status_code == 429:
        return APIError(PROVIDER, RATE_LIMITED, "Strava API rate limit exceeded", status_code)
    return APIError(PROVIDER, HTTP_ERROR, f"Strava API error: {status_code} {body[:200]}", status_code)


def decode_error(status_code: int, cause: BaseException) -> APIError:
    return APIError(PROVIDER, DECODE_ERROR, "Failed to decode API response", status_code, cause)


def network_error(operation: str, cause: BaseException) -> NetworkError:
    return NetworkError(PROVIDER, operation, "Network error during Strava request", cause)


def is_reauth_required(err: Optional[BaseException]) -> bool:
    """True when the error means the user must reconnect Strava."""
    return is_reauth_error(err)
