"""
Per-user sync configuration service.

Loads a User row, converts it into a UserSyncConfig and validates it.
Also persists tokens refreshed during a sync run.
"""

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetsync.shared.tokens import TokenState
from .models import User
from .repository import UserRepository
from .schemas import ConfigNotFoundError, ConfigValidationError, UserSyncConfig

logger = logging.getLogger(__name__)

STRAVA = "strava"
GOOGLE = "google"


class ConfigProvider(Protocol):
    """Source of per-user sync configuration."""

    async def get_sync_config(self, user_id: int) -> UserSyncConfig:
        """
        Raises:
            ConfigNotFoundError: user does not exist
            ConfigValidationError: a required field is missing or malformed
        """
        ...


def user_to_sync_config(user: User) -> UserSyncConfig:
    """Build a UserSyncConfig from a User row, mapping NULL strings to ''."""
    return UserSyncConfig(
        user_id=user.id,
        email=user.email or "",
        timezone=user.timezone or "",
        spreadsheet_id=user.spreadsheet_id or "",
        automation_enabled=bool(user.automation_enabled),
        email_notifications_enabled=bool(user.email_notifications_enabled),
        strava_athlete_id=user.strava_athlete_id,
        strava_refresh_token=user.strava_refresh_token or "",
        strava_access_token=user.strava_access_token or "",
        strava_token_expiry=user.strava_token_expiry,
        google_refresh_token=user.google_refresh_token or "",
        google_access_token=user.google_access_token or "",
        google_token_expiry=user.google_token_expiry,
    )


class ConfigService:
    """
    Database-backed ConfigProvider.

    Usage:
        service = ConfigService(AsyncSessionLocal)
        config = await service.get_sync_config(user_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_sync_config(self, user_id: int) -> UserSyncConfig:
        async with self._session_factory() as db:
            user = await UserRepository(db).get_by_id(user_id)
            if user is None:
                raise ConfigNotFoundError(user_id)
            config = user_to_sync_config(user)

        config.validate_for_sync()
        logger.debug(f"Loaded sync config: {config.summary()}")
        return config

    async def save_refreshed_tokens(
        self,
        user_id: int,
        provider: str,
        token_state: TokenState,
    ) -> None:
        """
        Persist a refreshed access token (and rotated refresh token).

        Args:
            user_id: Owner of the tokens
            provider: "strava" or "google"
            token_state: Tokens returned by the refresh
        """
        if provider not in (STRAVA, GOOGLE):
            raise ConfigValidationError("provider", f"unknown provider {provider!r}")

        async with self._session_factory() as db:
            repo = UserRepository(db)
            user = await repo.get_by_id(user_id)
            if user is None:
                raise ConfigNotFoundError(user_id)

            if provider == STRAVA:
                await repo.update_strava_tokens(
                    user, token_state.access_token, token_state.expiry, token_state.refresh_token
                )
            else:
                await repo.update_google_tokens(
                    user, token_state.access_token, token_state.expiry, token_state.refresh_token
                )
            await db.commit()

        logger.info(f"Saved refreshed {provider} tokens for user {user_id}")
