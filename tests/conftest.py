"""
Shared test fixtures.

Provider APIs are faked with httpx.MockTransport; FakeProviders routes
every request by host and path, records it, and replies with canned
responses that individual tests can override.
"""

import asyncio
from datetime import timedelta
from typing import Any, Optional

import httpx
import pytest

from sheetsync.config import Settings
from sheetsync.features.users import ConfigNotFoundError, UserSyncConfig
from sheetsync.shared.tokens import TokenState, utcnow


SPREADSHEET_ID = "sheet-123"


def activity_json(activity_id: int = 1, **overrides) -> dict:
    """Activity as returned by GET /athlete/activities."""
    data = {
        "id": activity_id,
        "name": "Morning Run",
        "type": "Run",
        "sport_type": "Run",
        "distance": 10000.0,
        "moving_time": 3000,
        "elapsed_time": 3100,
        "total_elevation_gain": 120.0,
        "start_date": "2024-05-01T06:00:00Z",
        "start_date_local": "2024-05-01T08:00:00Z",
        "timezone": "(GMT+01:00) Europe/London",
        "average_speed": 3.33,
        "max_speed": 4.5,
        "average_heartrate": 150.4,
        "max_heartrate": 172.0,
        "kudos_count": 5,
        "comment_count": 1,
        "map": {"summary_polyline": "ignored"},
    }
    data.update(overrides)
    return data


# =============================================================================
# Fake Provider APIs
# =============================================================================

class FakeProviders:
    """
    Canned Strava and Google endpoints.

    Responses are (status, json) tuples. Token responses may be lists,
    consumed one per call with the last entry repeating.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.strava_token: Any = (200, {
            "access_token": "strava-new",
            "refresh_token": "strava-refresh-2",
            "expires_at": int((utcnow() + timedelta(hours=6)).timestamp()),
        })
        self.google_token: Any = (200, {"access_token": "google-new", "expires_in": 3599})
        self.activities: Any = (200, [])
        self.metadata: Any = (200, {
            "spreadsheetId": SPREADSHEET_ID,
            "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/edit",
            "properties": {"title": "Training Log"},
            "sheets": [{"properties": {"title": "Sheet1"}}, {"properties": {"title": "Notes"}}],
        })
        self.values_read: Any = (200, {"range": "Sheet1!A1:A1", "majorDimension": "ROWS"})
        self.write: Any = (200, {"updatedRows": 0})
        self.clear: Any = (200, {"clearedRange": "Sheet1!A2:I1000"})
        self.athlete: Any = (200, {"id": 12345, "firstname": "Ada"})

    @staticmethod
    def kind(request: httpx.Request) -> str:
        host, path, method = request.url.host, request.url.path, request.method
        if host == "www.strava.com":
            if path == "/oauth/token":
                return "strava_token"
            if path == "/api/v3/athlete/activities":
                return "strava_activities"
            if path == "/api/v3/athlete":
                return "strava_athlete"
            return "strava_other"
        if host == "oauth2.googleapis.com":
            return "google_token"
        if host == "sheets.googleapis.com":
            if "/values/" not in path:
                return "sheets_metadata"
            if method == "POST" and path.endswith(":clear"):
                return "sheets_clear"
            if method == "PUT":
                return "sheets_write"
            return "sheets_values_read"
        return "unknown"

    def calls(self, kind: str) -> list[httpx.Request]:
        return [r for r in self.requests if self.kind(r) == kind]

    def kinds(self) -> list[str]:
        return [self.kind(r) for r in self.requests]

    def _reply(self, attr: str) -> httpx.Response:
        canned = getattr(self, attr)
        if isinstance(canned, list):
            canned = canned.pop(0) if len(canned) > 1 else canned[0]
        if isinstance(canned, BaseException):
            raise canned
        status, body = canned
        return httpx.Response(status, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        kind = self.kind(request)
        routes = {
            "strava_token": "strava_token",
            "strava_activities": "activities",
            "strava_athlete": "athlete",
            "google_token": "google_token",
            "sheets_metadata": "metadata",
            "sheets_values_read": "values_read",
            "sheets_write": "write",
            "sheets_clear": "clear",
        }
        if kind not in routes:
            return httpx.Response(404, json={"message": "Record Not Found"})
        return self._reply(routes[kind])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# =============================================================================
# Fake Collaborators
# =============================================================================

class FakeConfigProvider:
    """In-memory ConfigProvider. Values may be configs or exceptions."""

    def __init__(self, configs: Optional[dict] = None, delay: float = 0):
        self.configs = configs or {}
        self.delay = delay
        self.calls: list[int] = []

    async def get_sync_config(self, user_id: int) -> UserSyncConfig:
        self.calls.append(user_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.configs.get(user_id)
        if value is None:
            raise ConfigNotFoundError(user_id)
        if isinstance(value, BaseException):
            raise value
        return value


class FakeTokenStore:
    def __init__(self):
        self.saved: list[tuple[int, str, TokenState]] = []

    async def save_refreshed_tokens(self, user_id: int, provider: str, token_state: TokenState) -> None:
        self.saved.append((user_id, provider, token_state))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def providers():
    return FakeProviders()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        strava_client_id="strava-client",
        strava_client_secret="strava-secret",
        google_client_id="google-client",
        google_client_secret="google-secret",
        sync_lookback_days=7,
        http_timeout_seconds=5,
        persist_refreshed_tokens=True,
        sheets_clear_before_write=False,
    )


@pytest.fixture
def make_config():
    """Factory for a fully valid UserSyncConfig with unexpired tokens."""

    def _make(**overrides) -> UserSyncConfig:
        now = utcnow()
        values = {
            "user_id": 1,
            "email": "runner@example.com",
            "timezone": "Europe/London",
            "spreadsheet_id": SPREADSHEET_ID,
            "automation_enabled": True,
            "email_notifications_enabled": True,
            "strava_athlete_id": 12345,
            "strava_refresh_token": "strava-refresh",
            "strava_access_token": "strava-access",
            "strava_token_expiry": now + timedelta(hours=1),
            "google_refresh_token": "google-refresh",
            "google_access_token": "google-access",
            "google_token_expiry": now + timedelta(hours=1),
        }
        values.update(overrides)
        return UserSyncConfig(**values)

    return _make


@pytest.fixture
def token_store():
    return FakeTokenStore()


@pytest.fixture
def config_provider():
    return FakeConfigProvider()


@pytest.fixture
def activity_factory():
    return activity_json
