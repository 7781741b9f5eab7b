"""
Per-client OAuth token cache.

Each API client owns one TokenCache for the lifetime of a single sync job.
The cache implements the "check-then-refresh" protocol that runs before
every outbound API call:

1. Token valid for at least EXPIRY_MARGIN more -> use it.
2. Otherwise a refresh token is required (missing -> REAUTH_REQUIRED).
3. Exchange the refresh token via the provider's refresher.
4. Replace access token and expiry under the lock.

The lock makes concurrent callers on one client share a single refresh.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from .errors import reauth_required

logger = logging.getLogger(__name__)

EXPIRY_MARGIN = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class TokenState:
    """Access token with its expiry. Refresh token is kept when rotated."""

    access_token: str = ""
    expiry: Optional[datetime] = None
    refresh_token: Optional[str] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Usable only while now + 5 min is before expiry."""
        if not self.access_token or self.expiry is None:
            return False
        now = now or utcnow()
        return now + EXPIRY_MARGIN < as_utc(self.expiry)


Refresher = Callable[[str], Awaitable[TokenState]]
RefreshListener = Callable[[TokenState], Awaitable[None]]


class TokenCache:
    """
    Token holder for one provider and one user.

    Usage:
        cache = TokenCache("strava", refresh_token, refresher)
        cache.seed(access_token, expiry)
        token, refreshed = await cache.ensure_valid()
    """

    def __init__(
        self,
        provider: str,
        refresh_token: str,
        refresher: Refresher,
        on_refresh: Optional[RefreshListener] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self._refresh_token = refresh_token or ""
        self._refresher = refresher
        self._on_refresh = on_refresh
        self._clock = clock
        self._state = TokenState()
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def state(self) -> TokenState:
        return self._state

    @property
    def refresh_token(self) -> str:
        return self._refresh_token

    def seed(self, access_token: str, expiry: Optional[datetime]) -> None:
        """Set initial tokens from stored configuration."""
        self._state = TokenState(access_token or "", as_utc(expiry))
        logger.debug(
            f"Initial {self.provider} token set "
            f"(valid={self._state.is_valid(self._clock())}, expiry={expiry})"
        )

    def is_valid(self) -> bool:
        return self._state.is_valid(self._clock())

    async def ensure_valid(self) -> tuple[str, bool]:
        """
        Return a usable access token, refreshing it if needed.

        Returns:
            (access_token, refreshed) where refreshed is True when this call
            performed the exchange.

        Raises:
            AuthError(REAUTH_REQUIRED): no refresh token, or provider rejected it
            ProviderError: refresh failed for another classified reason
        """
        async with self._lock:
            if self._state.is_valid(self._clock()):
                return self._state.access_token, False

            if not self._refresh_token:
                logger.error(f"No refresh token available for {self.provider}")
                raise reauth_required(
                    self.provider,
                    f"{self.provider} connection requires re-authorization",
                )

            started = time.monotonic()
            new_state = await self._refresher(self._refresh_token)
            duration_ms = int((time.monotonic() - started) * 1000)

            if new_state.refresh_token:
                self._refresh_token = new_state.refresh_token
            self._state = TokenState(
                new_state.access_token,
                as_utc(new_state.expiry),
                self._refresh_token,
            )
            self.refresh_count += 1
            logger.info(
                f"Refreshed {self.provider} access token in {duration_ms}ms "
                f"(expires {self._state.expiry})"
            )

            if self._on_refresh is not None:
                await self._notify(self._state)

            return self._state.access_token, True

    async def _notify(self, state: TokenState) -> None:
        """Hand refreshed tokens to the listener; failures are logged only."""
        try:
            await self._on_refresh(state)
        except Exception as e:
            logger.warning(f"Failed to persist refreshed {self.provider} token: {e}")
