"""
User sync configuration schema.

UserSyncConfig is everything one sync run needs to know about a user.
Token values never appear in repr or serialized output.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field

from sheetsync.shared.tokens import TokenState


class ConfigError(Exception):
    """Configuration could not be loaded for a user."""
    pass


class ConfigNotFoundError(ConfigError):
    """User does not exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"user not found: {user_id}")


class ConfigValidationError(ConfigError):
    """A required configuration field is missing or malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"configuration validation failed for {field}: {message}")


class UserSyncConfig(BaseModel):
    """Consolidated per-user configuration for a sync run."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: int
    email: str = ""
    timezone: str = "UTC"
    spreadsheet_id: str = ""

    automation_enabled: bool = False
    email_notifications_enabled: bool = False

    strava_athlete_id: Optional[int] = None
    strava_refresh_token: str = Field(default="", repr=False, exclude=True)
    strava_access_token: str = Field(default="", repr=False, exclude=True)
    strava_token_expiry: Optional[datetime] = Field(default=None, repr=False, exclude=True)

    google_refresh_token: str = Field(default="", repr=False, exclude=True)
    google_access_token: str = Field(default="", repr=False, exclude=True)
    google_token_expiry: Optional[datetime] = Field(default=None, repr=False, exclude=True)

    @property
    def strava_token(self) -> TokenState:
        return TokenState(self.strava_access_token, self.strava_token_expiry)

    @property
    def google_token(self) -> TokenState:
        return TokenState(self.google_access_token, self.google_token_expiry)

    def has_valid_strava_token(self, now: Optional[datetime] = None) -> bool:
        """Stored Strava access token present and good for 5+ minutes."""
        return self.strava_token.is_valid(now)

    def has_valid_google_token(self, now: Optional[datetime] = None) -> bool:
        """Stored Google access token present and good for 5+ minutes."""
        return self.google_token.is_valid(now)

    def validate_for_sync(self) -> None:
        """
        Check every field a sync run depends on.

        Raises:
            ConfigValidationError: first missing or malformed field
        """
        if self.user_id <= 0:
            raise ConfigValidationError("user_id", "must be a positive integer")
        if not self.email:
            raise ConfigValidationError("email", "is required for notifications")

        if not self.google_refresh_token:
            raise ConfigValidationError("google_refresh_token", "is required for Google Sheets API access")
        if self.google_access_token and self.google_token_expiry is None:
            raise ConfigValidationError("google_token_expiry", "is required when access token is present")

        if not self.strava_refresh_token:
            raise ConfigValidationError("strava_refresh_token", "is required for Strava API access")
        if self.strava_athlete_id is None or self.strava_athlete_id <= 0:
            raise ConfigValidationError("strava_athlete_id", "is required for Strava API access")
        if self.strava_access_token and self.strava_token_expiry is None:
            raise ConfigValidationError("strava_token_expiry", "is required when access token is present")

        if not self.spreadsheet_id:
            raise ConfigValidationError("spreadsheet_id", "is required for data output destination")

        if not self.timezone:
            raise ConfigValidationError("timezone", "is required for proper date/time processing")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigValidationError("timezone", "must be a valid timezone location")

    def summary(self) -> dict:
        """Loggable view without secrets."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "spreadsheet_id": self.spreadsheet_id,
            "timezone": self.timezone,
            "automation_enabled": self.automation_enabled,
            "has_strava_refresh_token": bool(self.strava_refresh_token),
            "has_google_refresh_token": bool(self.google_refresh_token),
            "strava_token_valid": self.has_valid_strava_token(),
            "google_token_valid": self.has_valid_google_token(),
        }
