"""
Google Sheets API client.

One instance per user per sync job. Same token protocol as the Strava
client; the authenticated session is rebuilt whenever the token changes.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence
from urllib.parse import quote

import httpx

from sheetsync.config import settings
from sheetsync.features.strava.models import Activity
from sheetsync.shared.tokens import RefreshListener, TokenCache
from . import errors
from .oauth import GoogleOAuth
from .rows import activities_to_rows, data_range, write_range

logger = logging.getLogger(__name__)


@dataclass
class SpreadsheetInfo:
    """Spreadsheet metadata."""

    id: str
    title: str
    url: str
    sheet_count: int
    sheet_titles: list[str]


class SheetsClient:
    """
    Async client for the Google Sheets v4 API.

    Usage:
        async with SheetsClient(user_id, refresh_token) as client:
            await client.validate_access(spreadsheet_id)
            await client.write_activities(spreadsheet_id, activities)
    """

    API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
    ACCESS_CHECK_RANGE = "A1:A1"
    VALUE_INPUT_OPTION = "USER_ENTERED"

    def __init__(
        self,
        user_id: int,
        refresh_token: str,
        oauth: Optional[GoogleOAuth] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        on_refresh: Optional[RefreshListener] = None,
        clear_before_write: Optional[bool] = None,
    ):
        self.user_id = user_id
        self._transport = transport
        self._timeout = timeout or settings.http_timeout_seconds
        self._oauth = oauth or GoogleOAuth(transport=transport, timeout=self._timeout)
        self.tokens = TokenCache(
            errors.PROVIDER,
            refresh_token,
            self._oauth.refresh_token,
            on_refresh=on_refresh,
        )
        self.clear_before_write = (
            settings.sheets_clear_before_write if clear_before_write is None else clear_before_write
        )
        self._session: Optional[httpx.AsyncClient] = None
        self._session_token: Optional[str] = None

    async def __aenter__(self) -> "SheetsClient":
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
        """Get the Sheets session, building it only when the token changed."""
        token, refreshed = await self.tokens.ensure_valid()
        if self._session is None or refreshed or token != self._session_token:
            await self.close()
            self._session = httpx.AsyncClient(
                base_url=self.API_URL,
                transport=self._transport,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {token}"},
            )
            self._session_token = token
            logger.debug(f"Created Google Sheets session for user {self.user_id}")
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

    async def _request(
        self,
        method: str,
        path: str,
        spreadsheet_id: str,
        operation: str,
        **kwargs,
    ) -> Any:
        """Make an authenticated request and classify failures."""
        session = await self._get_session()
        try:
            response = await session.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                f"Google Sheets {operation} failed with network error "
                f"for user {self.user_id}, spreadsheet {spreadsheet_id}: {e}"
            )
            raise errors.network_error(operation, e) from e

        if not response.is_success:
            logger.error(
                f"Google Sheets {operation} returned {response.status_code} "
                f"for user {self.user_id}, spreadsheet {spreadsheet_id}: {response.text[:200]}"
            )
            raise errors.classify_response(
                response.status_code, response.text, spreadsheet_id, operation
            )

        try:
            return response.json()
        except ValueError as e:
            raise errors.decode_error(response.status_code, e) from e

    @staticmethod
    def _values_path(spreadsheet_id: str, a1_range: str) -> str:
        return f"/{quote(spreadsheet_id, safe='')}/values/{quote(a1_range, safe='!:')}"

    async def _get_metadata(self, spreadsheet_id: str, operation: str) -> dict:
        return await self._request(
            "GET",
            f"/{quote(spreadsheet_id, safe='')}",
            spreadsheet_id,
            operation,
            params={"fields": "spreadsheetId,spreadsheetUrl,properties.title,sheets.properties.title"},
        )

    async def validate_access(self, spreadsheet_id: str) -> None:
        """
        Confirm the user can read the spreadsheet and its values.

        Reads metadata, then a one-cell range. Never mutates the sheet.
        """
        started = time.monotonic()

        metadata = await self._get_metadata(spreadsheet_id, "read access validation")
        await self._request(
            "GET",
            self._values_path(spreadsheet_id, self.ACCESS_CHECK_RANGE),
            spreadsheet_id,
            "write access validation",
        )

        title = (metadata.get("properties") or {}).get("title", "")
        logger.info(
            f"Google Sheets access validated for user {self.user_id}, "
            f"spreadsheet {spreadsheet_id} ('{title}') in "
            f"{int((time.monotonic() - started) * 1000)}ms"
        )

    async def get_spreadsheet_info(self, spreadsheet_id: str) -> SpreadsheetInfo:
        """Get spreadsheet metadata."""
        metadata = await self._get_metadata(spreadsheet_id, "get spreadsheet info")
        sheets = metadata.get("sheets") or []
        return SpreadsheetInfo(
            id=metadata.get("spreadsheetId", spreadsheet_id),
            title=(metadata.get("properties") or {}).get("title", ""),
            url=metadata.get("spreadsheetUrl", ""),
            sheet_count=len(sheets),
            sheet_titles=[(s.get("properties") or {}).get("title", "") for s in sheets],
        )

    async def write_activities(
        self,
        spreadsheet_id: str,
        activities: Sequence[Activity],
    ) -> None:
        """
        Write activities to Sheet1 starting at row 2.

        The range is sized to the rows written, so re-running the same
        window overwrites the same cells. With clear_before_write the
        data area is emptied first so no stale rows survive a shorter run.
        """
        if not activities:
            logger.debug(f"No activities to write for user {self.user_id}")
            return

        started = time.monotonic()
        rows = activities_to_rows(activities)
        target = write_range(len(rows))

        if self.clear_before_write:
            await self._request(
                "POST",
                self._values_path(spreadsheet_id, data_range()) + ":clear",
                spreadsheet_id,
                "clear activities",
                json={},
            )

        await self._request(
            "PUT",
            self._values_path(spreadsheet_id, target),
            spreadsheet_id,
            "write activities",
            params={"valueInputOption": self.VALUE_INPUT_OPTION},
            json={"range": target, "majorDimension": "ROWS", "values": rows},
        )

        logger.info(
            f"Wrote {len(rows)} activities to spreadsheet {spreadsheet_id} "
            f"range {target} for user {self.user_id} in "
            f"{int((time.monotonic() - started) * 1000)}ms"
        )
