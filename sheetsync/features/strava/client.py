"""
Strava API client.

One instance per user per sync job. Wraps every request in the
check-then-refresh token protocol and classifies failures.

Strava API Limits:
- 200 requests per 15 minutes
- 2,000 requests per day

A sync makes a single activities request, so the worker never
throttles itself; 429s surface as APIError(RATE_LIMITED).
"""

import logging
import time
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from sheetsync.config import settings
from sheetsync.shared.tokens import RefreshListener, TokenCache
from . import errors
from .models import Activity
from .oauth import StravaOAuth

logger = logging.getLogger(__name__)

_activities_adapter = TypeAdapter(list[Activity])


class StravaClient:
    """
    Async client for the Strava API with token lifecycle management.

    Usage:
        async with StravaClient(user_id, refresh_token) as client:
            client.set_initial_tokens(access_token, expiry)
            activities = await client.fetch_activities_since(since)
    """

    API_URL = "https://www.strava.com/api/v3"
    ACTIVITIES_PER_PAGE = 100
    USER_AGENT = "Strava-Sheets-Sync/1.0"

    def __init__(
        self,
        user_id: int,
        refresh_token: str,
        oauth: Optional[StravaOAuth] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        on_refresh: Optional[RefreshListener] = None,
    ):
        self.user_id = user_id
        self._transport = transport
        self._timeout = timeout or settings.http_timeout_seconds
        self._oauth = oauth or StravaOAuth(transport=transport, timeout=self._timeout)
        self.tokens = TokenCache(
            errors.PROVIDER,
            refresh_token,
            self._oauth.refresh_token,
            on_refresh=on_refresh,
        )
        self._session: Optional[httpx.AsyncClient] = None
        self._session_token: Optional[str] = None

    async def __aenter__(self) -> "StravaClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Token Management
    # -------------------------------------------------------------------------

    def set_initial_tokens(self, access_token: str, expiry: Optional[datetime]) -> None:
        """Seed the cache with a stored access token."""
        self.tokens.seed(access_token, expiry)

    async def _get_session(self) -> httpx.AsyncClient:
        """Get an HTTP session bound to a currently valid access token."""
        token, refreshed = await self.tokens.ensure_valid()
        if self._session is None or refreshed or token != self._session_token:
            await self.close()
            self._session = httpx.AsyncClient(
                base_url=self.API_URL,
                transport=self._transport,
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                    "User-Agent": self.USER_AGENT,
                },
            )
            self._session_token = token
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.aclose()
            self._session = None
            self._session_token = None

    # -------------------------------------------------------------------------
    # API Calls
    # -------------------------------------------------------------------------

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Make an authenticated API request.

        Raises:
            AuthError: token problems (ACCESS_DENIED, FORBIDDEN, REAUTH_REQUIRED)
            APIError: RATE_LIMITED, HTTP_ERROR, DECODE_ERROR
            NetworkError: transport failure
        """
        session = await self._get_session()

        started = time.monotonic()
        try:
            response = await session.request(method, endpoint, params=params)
        except httpx.HTTPError as e:
            logger.error(
                f"Strava {method} {endpoint} failed with network error "
                f"for user {self.user_id}: {e}"
            )
            raise errors.network_error("api_request", e) from e
        duration_ms = int((time.monotonic() - started) * 1000)

        if "X-RateLimit-Usage" in response.headers:
            logger.debug(
                f"Strava rate limit: {response.headers.get('X-RateLimit-Usage')} "
                f"/ {response.headers.get('X-RateLimit-Limit')}"
            )

        if not response.is_success:
            logger.error(
                f"Strava {method} {endpoint} returned {response.status_code} "
                f"for user {self.user_id} in {duration_ms}ms: {response.text[:200]}"
            )
            raise errors.classify_response(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise errors.decode_error(response.status_code, e) from e

        logger.debug(
            f"Strava {method} {endpoint} -> {response.status_code} "
            f"for user {self.user_id} in {duration_ms}ms"
        )
        return data

    async def fetch_activities_since(self, since: datetime) -> list[Activity]:
        """
        Get athlete activities started after a point in time.

        Single page of up to 100 activities; enough for the sync window.

        Args:
            since: Only activities after this time

        Returns:
            Activities in API order
        """
        params = {"after": int(since.timestamp()), "per_page": self.ACTIVITIES_PER_PAGE}
        payload = await self._api_request("GET", "/athlete/activities", params)

        try:
            activities = _activities_adapter.validate_python(payload)
        except PydanticValidationError as e:
            raise errors.decode_error(200, e) from e

        logger.info(
            f"Fetched {len(activities)} Strava activities for user {self.user_id} "
            f"since {since.isoformat()}"
        )
        return activities

    async def get_activity(self, activity_id: int) -> Activity:
        """Get a single activity by ID."""
        payload = await self._api_request("GET", f"/activities/{activity_id}")
        try:
            return Activity.model_validate(payload)
        except PydanticValidationError as e:
            raise errors.decode_error(200, e) from e

    async def get_athlete_profile(self) -> dict:
        """Get the authenticated athlete profile."""
        profile = await self._api_request("GET", "/athlete")
        if not isinstance(profile, dict):
            raise errors.decode_error(200, TypeError("athlete profile is not an object"))
        logger.info(f"Fetched Strava athlete {profile.get('id', 'unknown')} for user {self.user_id}")
        return profile
