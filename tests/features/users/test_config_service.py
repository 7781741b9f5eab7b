"""
Tests for ConfigService on a temporary SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sheetsync.db.session import create_engine_for, create_session_factory, init_db
from sheetsync.features.users import (
    ConfigNotFoundError,
    ConfigService,
    ConfigValidationError,
    UserRepository,
)
from sheetsync.shared.tokens import TokenState, utcnow


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_engine_for(f"sqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def create_user(session_factory):
    async def _create(**overrides) -> int:
        values = {
            "email": "runner@example.com",
            "timezone": "Europe/London",
            "spreadsheet_id": "sheet-123",
            "automation_enabled": True,
            "strava_athlete_id": 12345,
            "strava_refresh_token": "strava-refresh",
            "strava_access_token": "strava-access",
            "strava_token_expiry": utcnow() + timedelta(hours=1),
            "google_refresh_token": "google-refresh",
        }
        values.update(overrides)
        async with session_factory() as db:
            user = await UserRepository(db).create(**values)
            await db.commit()
            return user.id
    return _create


@pytest.fixture
def service(session_factory):
    return ConfigService(session_factory)


# =============================================================================
# Test get_sync_config
# =============================================================================

class TestGetSyncConfig:

    async def test_loads_user(self, service, create_user):
        user_id = await create_user()

        config = await service.get_sync_config(user_id)

        assert config.user_id == user_id
        assert config.spreadsheet_id == "sheet-123"
        assert config.automation_enabled is True
        assert config.strava_refresh_token == "strava-refresh"
        assert config.google_access_token == ""
        assert config.has_valid_strava_token()
        assert not config.has_valid_google_token()

    async def test_unknown_user(self, service):
        with pytest.raises(ConfigNotFoundError) as exc_info:
            await service.get_sync_config(404)
        assert exc_info.value.user_id == 404

    async def test_missing_spreadsheet(self, service, create_user):
        user_id = await create_user(spreadsheet_id=None)

        with pytest.raises(ConfigValidationError) as exc_info:
            await service.get_sync_config(user_id)
        assert exc_info.value.field == "spreadsheet_id"

    async def test_missing_google_connection(self, service, create_user):
        user_id = await create_user(google_refresh_token=None)

        with pytest.raises(ConfigValidationError) as exc_info:
            await service.get_sync_config(user_id)
        assert exc_info.value.field == "google_refresh_token"


# =============================================================================
# Test save_refreshed_tokens
# =============================================================================

class TestSaveRefreshedTokens:

    async def test_strava_tokens_with_rotation(self, service, create_user):
        user_id = await create_user()
        expiry = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

        await service.save_refreshed_tokens(
            user_id, "strava", TokenState("strava-new", expiry, "strava-refresh-2"),
        )
        config = await service.get_sync_config(user_id)

        assert config.strava_access_token == "strava-new"
        assert config.strava_refresh_token == "strava-refresh-2"
        assert config.strava_token_expiry.replace(tzinfo=timezone.utc) == expiry

    async def test_google_tokens_without_rotation(self, service, create_user):
        user_id = await create_user()
        expiry = utcnow() + timedelta(hours=1)

        await service.save_refreshed_tokens(user_id, "google", TokenState("google-new", expiry))
        config = await service.get_sync_config(user_id)

        assert config.google_access_token == "google-new"
        assert config.google_refresh_token == "google-refresh"
        assert config.has_valid_google_token()

    async def test_unknown_provider(self, service, create_user):
        user_id = await create_user()
        with pytest.raises(ConfigValidationError):
            await service.save_refreshed_tokens(user_id, "garmin", TokenState("x"))

    async def test_unknown_user(self, service):
        with pytest.raises(ConfigNotFoundError):
            await service.save_refreshed_tokens(404, "strava", TokenState("x"))
