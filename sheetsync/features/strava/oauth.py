"""
Strava OAuth token refresh.

Exchanges a long-lived refresh token for a short-lived access token.
Strava rotates refresh tokens, so the new one is returned as well.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from sheetsync.config import settings
from sheetsync.shared.tokens import TokenState
from . import errors

logger = logging.getLogger(__name__)


class StravaOAuth:
    """
    Strava OAuth handler.

    Usage:
        oauth = StravaOAuth()
        state = await oauth.refresh_token(refresh_token)
    """

    TOKEN_URL = "https://www.strava.com/oauth/token"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.strava_client_id
        self.client_secret = client_secret if client_secret is not None else settings.strava_client_secret
        self._transport = transport
        self._timeout = timeout or settings.http_timeout_seconds

    async def refresh_token(self, refresh_token: str) -> TokenState:
        """
        Refresh an expired access token.

        Args:
            refresh_token: Current refresh token

        Returns:
            TokenState with access token, expiry and rotated refresh token

        Raises:
            AuthError(REAUTH_REQUIRED): Strava rejected the refresh token
            APIError: token endpoint returned another error
            NetworkError: request never completed
        """
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "client_id": self.client_id or "",
                        "client_secret": self.client_secret or "",
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Strava token refresh request failed: {e}")
            raise errors.network_error("token_refresh", e) from e

        if response.status_code != 200:
            logger.error(f"Strava token refresh failed: {response.status_code} {response.text[:200]}")
            raise errors.classify_refresh_failure(response.status_code, response.text)

        try:
            data = response.json()
            expires_at = datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
            return TokenState(
                access_token=data["access_token"],
                expiry=expires_at,
                refresh_token=data.get("refresh_token"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise errors.decode_error(response.status_code, e) from e
