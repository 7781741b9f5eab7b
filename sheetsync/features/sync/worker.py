"""
Per-user sync orchestrator.

Runs the pipeline for one user as a fixed sequence of steps:

1. Load sync config                      -> CONFIG_ERROR
2. Check automation_enabled              -> AUTOMATION_DISABLED (skip)
3. Build Strava client, seed tokens
4. Build Sheets client, seed tokens
5. Validate spreadsheet access           -> REAUTH_REQUIRED | SHEETS_ACCESS_ERROR
6. Fetch activities for the lookback     -> REAUTH_REQUIRED | FETCH_ERROR
7. Write activities (when any)           -> REAUTH_REQUIRED | WRITE_ERROR
8. Report success

Each step returns its output or a StepFailure. The first failure ends
the run; nothing fetched before it is kept.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol, Sequence, TypeVar, Union

import httpx

from sheetsync.config import Settings, settings as default_settings
from sheetsync.features.sheets import GoogleOAuth, SheetsClient
from sheetsync.features.strava import Activity, StravaClient, StravaOAuth
from sheetsync.features.users import ConfigProvider, UserSyncConfig
from sheetsync.shared.errors import ProviderError, is_reauth_error
from sheetsync.shared.tokens import RefreshListener, TokenState, utcnow
from .config import SyncConfig
from .result import ErrorKind, ProcessingResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenStore(Protocol):
    """Receives tokens refreshed during a run."""

    async def save_refreshed_tokens(self, user_id: int, provider: str, token_state: TokenState) -> None:
        ...


@dataclass(frozen=True)
class StepFailure:
    """Classified failure of one pipeline step."""

    step: str
    kind: ErrorKind
    message: str
    error_type: Optional[str] = None
    reauth_provider: Optional[str] = None

    @property
    def requires_reauth(self) -> bool:
        return self.kind == ErrorKind.REAUTH_REQUIRED


StepOutcome = Union[T, StepFailure]


def new_trace_id() -> str:
    return uuid.uuid4().hex[:SyncConfig.TRACE_ID_LENGTH]


def classify_step_error(step: str, error: BaseException, fallback: ErrorKind) -> StepFailure:
    """
    Map a provider error raised inside a step to its failure kind.

    Re-authorization wins over the step's own kind, so a revoked token
    is reported the same way wherever the refresh happened.
    """
    provider = getattr(error, "provider", None)
    error_type = getattr(error, "type", None)

    if is_reauth_error(error):
        return StepFailure(
            step=step,
            kind=ErrorKind.REAUTH_REQUIRED,
            message=str(error),
            error_type=error_type,
            reauth_provider=provider,
        )
    return StepFailure(step=step, kind=fallback, message=str(error), error_type=error_type)


# =============================================================================
# Sync Worker
# =============================================================================

class SyncWorker:
    """
    Processes sync jobs for individual users.

    Holds no per-user state; every call builds its own clients.

    Usage:
        worker = SyncWorker(config_service, token_store=config_service)
        result = await worker.process_user(user_id)
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        token_store: Optional[TokenStore] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        strava_oauth: Optional[StravaOAuth] = None,
        google_oauth: Optional[GoogleOAuth] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config_provider = config_provider
        self.token_store = token_store
        self.settings = settings or default_settings
        self._transport = transport
        self._strava_oauth = strava_oauth
        self._google_oauth = google_oauth
        self._clock = clock

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def process_user(
        self,
        user_id: int,
        trace_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProcessingResult:
        """
        Run the full pipeline for one user.

        Never raises: timeouts, cancellation and unexpected exceptions
        are reported as results.

        Args:
            user_id: User to sync
            trace_id: Correlation id for logs; generated when omitted
            timeout: Wall-clock budget in seconds for the whole run

        Returns:
            ProcessingResult for this run
        """
        trace_id = trace_id or new_trace_id()
        started = time.monotonic()
        logger.info(f"Starting sync for user {user_id} (trace {trace_id})")

        try:
            if timeout is not None:
                outcome = await asyncio.wait_for(self._run_pipeline(user_id, trace_id), timeout)
            else:
                outcome = await self._run_pipeline(user_id, trace_id)
        except asyncio.TimeoutError:
            outcome = StepFailure("job", ErrorKind.TIMEOUT, f"sync exceeded {timeout}s timeout")
        except asyncio.CancelledError:
            outcome = StepFailure("job", ErrorKind.CANCELLED, "sync was cancelled")
        except Exception as e:
            logger.exception(f"Unexpected error syncing user {user_id} (trace {trace_id})")
            outcome = StepFailure("job", ErrorKind.INTERNAL_ERROR, f"internal error: {e}")

        duration = timedelta(seconds=time.monotonic() - started)
        result = self._to_result(user_id, trace_id, outcome, duration)
        self._log_result(result)
        return result

    async def process_users(self, user_ids: Sequence[int]) -> list[ProcessingResult]:
        """
        Sync several users one after another.

        One user's failure never affects the others.
        """
        results = []
        for user_id in user_ids:
            results.append(await self.process_user(user_id))

        succeeded = sum(1 for r in results if r.success)
        skipped = sum(1 for r in results if r.skipped)
        logger.info(
            f"Batch sync complete: {len(results)} users, {succeeded} succeeded, "
            f"{skipped} skipped, {len(results) - succeeded - skipped} failed"
        )
        return results

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _run_pipeline(self, user_id: int, trace_id: str) -> Union[int, StepFailure]:
        """Returns the number of activities written, or the first failure."""
        config = await self._load_config(user_id)
        if isinstance(config, StepFailure):
            return config

        skip = self._check_automation(config)
        if skip is not None:
            return skip

        strava = self._build_strava_client(config)
        sheets = self._build_sheets_client(config)
        try:
            access = await self._validate_access(sheets, config)
            if isinstance(access, StepFailure):
                return access

            activities = await self._fetch_activities(strava, config)
            if isinstance(activities, StepFailure):
                return activities

            written = await self._write_activities(sheets, config, activities)
            if isinstance(written, StepFailure):
                return written

            return len(activities)
        finally:
            await strava.close()
            await sheets.close()

    async def _load_config(self, user_id: int) -> StepOutcome[UserSyncConfig]:
        try:
            return await self.config_provider.get_sync_config(user_id)
        except Exception as e:
            logger.error(f"Failed to load sync config for user {user_id}: {e}")
            return StepFailure("load_config", ErrorKind.CONFIG_ERROR, f"failed to load config: {e}")

    def _check_automation(self, config: UserSyncConfig) -> Optional[StepFailure]:
        if config.automation_enabled:
            return None
        logger.info(f"Automation disabled for user {config.user_id}, skipping")
        return StepFailure("check_automation", ErrorKind.AUTOMATION_DISABLED, "automation disabled")

    def _token_listener(self, user_id: int, provider: str) -> Optional[RefreshListener]:
        if self.token_store is None or not self.settings.persist_refreshed_tokens:
            return None

        async def save(state: TokenState) -> None:
            await self.token_store.save_refreshed_tokens(user_id, provider, state)

        return save

    def _build_strava_client(self, config: UserSyncConfig) -> StravaClient:
        client = StravaClient(
            config.user_id,
            config.strava_refresh_token,
            oauth=self._strava_oauth,
            transport=self._transport,
            timeout=self.settings.http_timeout_seconds,
            on_refresh=self._token_listener(config.user_id, "strava"),
        )
        if config.has_valid_strava_token(self._clock()):
            client.set_initial_tokens(config.strava_access_token, config.strava_token_expiry)
        return client

    def _build_sheets_client(self, config: UserSyncConfig) -> SheetsClient:
        client = SheetsClient(
            config.user_id,
            config.google_refresh_token,
            oauth=self._google_oauth,
            transport=self._transport,
            timeout=self.settings.http_timeout_seconds,
            on_refresh=self._token_listener(config.user_id, "google"),
            clear_before_write=self.settings.sheets_clear_before_write,
        )
        if config.has_valid_google_token(self._clock()):
            client.set_initial_tokens(config.google_access_token, config.google_token_expiry)
        return client

    async def _validate_access(self, sheets: SheetsClient, config: UserSyncConfig) -> Optional[StepFailure]:
        try:
            await sheets.validate_access(config.spreadsheet_id)
        except ProviderError as e:
            return classify_step_error("validate_access", e, ErrorKind.SHEETS_ACCESS_ERROR)
        return None

    async def _fetch_activities(self, strava: StravaClient, config: UserSyncConfig) -> StepOutcome[list[Activity]]:
        since = self._clock() - timedelta(days=self.settings.sync_lookback_days)
        try:
            activities = await strava.fetch_activities_since(since)
        except ProviderError as e:
            return classify_step_error("fetch_activities", e, ErrorKind.FETCH_ERROR)
        logger.info(f"Fetched {len(activities)} activities for user {config.user_id} since {since:%Y-%m-%d}")
        return activities

    async def _write_activities(
        self,
        sheets: SheetsClient,
        config: UserSyncConfig,
        activities: list[Activity],
    ) -> Optional[StepFailure]:
        if not activities:
            logger.info(f"No new activities for user {config.user_id}, nothing to write")
            return None
        try:
            await sheets.write_activities(config.spreadsheet_id, activities)
        except ProviderError as e:
            return classify_step_error("write_activities", e, ErrorKind.WRITE_ERROR)
        return None

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_result(
        user_id: int,
        trace_id: str,
        outcome: Union[int, StepFailure],
        duration: timedelta,
    ) -> ProcessingResult:
        if isinstance(outcome, StepFailure):
            return ProcessingResult(
                user_id=user_id,
                success=False,
                processing_duration=duration,
                error_message=outcome.message,
                error_kind=outcome.kind,
                requires_reauth=outcome.requires_reauth,
                error_type=outcome.error_type,
                reauth_provider=outcome.reauth_provider,
                trace_id=trace_id,
            )
        return ProcessingResult(
            user_id=user_id,
            success=True,
            activities_count=outcome,
            processing_duration=duration,
            trace_id=trace_id,
        )

    @staticmethod
    def _log_result(result: ProcessingResult) -> None:
        details = result.to_log_dict()
        if result.success:
            logger.info(f"Sync succeeded for user {result.user_id}: {details}")
        elif result.skipped:
            logger.info(f"Sync skipped for user {result.user_id}: {details}")
        elif result.requires_reauth:
            logger.warning(f"Sync needs re-authorization for user {result.user_id}: {details}")
        else:
            logger.error(f"Sync failed for user {result.user_id}: {details}")
