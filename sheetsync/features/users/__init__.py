"""
Users feature: storage of accounts, credentials and sync preferences.
"""

from .config_service import ConfigProvider, ConfigService, user_to_sync_config
from .models import User
from .repository import UserRepository
from .schemas import (
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    UserSyncConfig,
)

__all__ = [
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigProvider",
    "ConfigService",
    "ConfigValidationError",
    "User",
    "UserRepository",
    "UserSyncConfig",
    "user_to_sync_config",
]
