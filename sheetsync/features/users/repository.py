"""
User repository.

Data access layer for the User model.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from sheetsync.shared.repository import BaseRepository
from .models import User


class UserRepository(BaseRepository[User]):
    """Repository for User operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, User)

    async def update_strava_tokens(
        self,
        user: User,
        access_token: str,
        expiry: datetime | None,
        refresh_token: str | None = None,
    ) -> User:
        """
        Store a refreshed Strava token pair.

        Args:
            user: User to update
            access_token: New access token
            expiry: Access token expiry
            refresh_token: Rotated refresh token, if the provider issued one

        Returns:
            Updated user
        """
        fields = {"strava_access_token": access_token, "strava_token_expiry": expiry}
        if refresh_token:
            fields["strava_refresh_token"] = refresh_token
        return await self.update(user, **fields)

    async def update_google_tokens(
        self,
        user: User,
        access_token: str,
        expiry: datetime | None,
        refresh_token: str | None = None,
    ) -> User:
        """Store a refreshed Google token pair."""
        fields = {"google_access_token": access_token, "google_token_expiry": expiry}
        if refresh_token:
            fields["google_refresh_token"] = refresh_token
        return await self.update(user, **fields)
