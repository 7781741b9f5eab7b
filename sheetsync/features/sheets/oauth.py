"""
Google OAuth token refresh.

Google only returns a new refresh token when rotation is enabled for
the client, so the returned TokenState may carry None.
"""

import logging
from datetime import timedelta
from typing import Optional

import httpx

from sheetsync.config import settings
from sheetsync.shared.tokens import TokenState, utcnow
from . import errors

logger = logging.getLogger(__name__)


class GoogleOAuth:
    """
    Google OAuth handler for server-side token refresh.

    Usage:
        oauth = GoogleOAuth()
        state = await oauth.refresh_token(refresh_token)
    """

    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.google_client_id
        self.client_secret = client_secret if client_secret is not None else settings.google_client_secret
        self._transport = transport
        self._timeout = timeout or settings.http_timeout_seconds

    async def refresh_token(self, refresh_token: str) -> TokenState:
        """
        Refresh an expired access token.

        Raises:
            AuthError(REAUTH_REQUIRED): Google rejected the refresh token
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
            logger.error(f"Google token refresh request failed: {e}")
            raise errors.network_error("token_refresh", e) from e

        if response.status_code != 200:
            logger.error(f"Google token refresh failed: {response.status_code} {response.text[:200]}")
            raise errors.classify_refresh_failure(response.status_code, response.text)

        try:
            data = response.json()
            return TokenState(
                access_token=data["access_token"],
                expiry=utcnow() + timedelta(seconds=int(data["expires_in"])),
                refresh_token=data.get("refresh_token"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise errors.decode_error(response.status_code, e) from e
