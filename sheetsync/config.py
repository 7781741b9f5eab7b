"""
Application Configuration

Uses Pydantic Settings for type-safe configuration.
Values come from the environment or a local .env file.
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field, field_validator, ConfigDict


class Settings(BaseSettings):
    """Worker settings with validation."""

    # === Core ===
    environment: str = Field(default="local", validation_alias=AliasChoices("app_env", "environment"))
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # === Database ===
    database_url: str = Field(
        default="sqlite:///./sheetsync.db",
        description="Database connection URL"
    )

    # === Job Queue ===
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL; when unset the worker runs in timer mode"
    )
    queue_name: str = Field(default="jobs_queue")

    # === Strava ===
    strava_client_id: Optional[str] = Field(default=None)
    strava_client_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("strava_client_secret", "strava_secret")
    )

    # === Google ===
    google_client_id: Optional[str] = Field(default=None)
    google_client_secret: Optional[str] = Field(default=None)

    # === Worker Pool ===
    max_workers: int = Field(default=3, ge=1)
    job_timeout_seconds: float = Field(default=600, gt=0)
    dequeue_timeout_seconds: float = Field(default=60, gt=0)
    dequeue_error_backoff_seconds: float = Field(default=5, ge=0)

    # === Timer Mode (local development) ===
    test_mode_interval_seconds: float = Field(default=60, gt=0)
    test_mode_timeout_seconds: float = Field(default=300, gt=0)
    test_user_id: int = Field(default=1)

    # === Sync Behaviour ===
    sync_lookback_days: int = Field(default=7, ge=1)
    http_timeout_seconds: float = Field(default=30, gt=0)
    sheets_clear_before_write: bool = Field(
        default=False,
        description="Clear Sheet1!A2:I before writing so shorter runs leave no stale rows"
    )
    persist_refreshed_tokens: bool = Field(default=True)

    @field_validator('database_url')
    @classmethod
    def fix_postgres_url(cls, v: str) -> str:
        """Fix Render/Railway postgres:// URL to postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lowercase levels and WARN as an alias."""
        level = v.strip().upper()
        if level == "WARN":
            return "WARNING"
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return "INFO"
        return level

    @property
    def strava_oauth_configured(self) -> bool:
        return bool(self.strava_client_id and self.strava_client_secret)

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance
settings = Settings()
