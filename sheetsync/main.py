"""
Strava -> Google Sheets sync worker

Entry point: checks dependencies, then dispatches sync jobs until
interrupted.

Exit codes:
    0  clean shutdown
    2  dependency check failed (database unreachable or not configured)
    3  initialization failed
"""

import asyncio
import logging
import signal
import sys

from sheetsync.config import settings
from sheetsync.db.session import AsyncSessionLocal, init_db, ping_db
from sheetsync.features.sync import JobDispatcher, RedisJobQueue, SyncWorker
from sheetsync.features.users import ConfigService
from sheetsync.shared.retry import CRITICAL, with_exponential_backoff


# === Logging Setup ===
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)

EXIT_DEPENDENCY_CHECK_FAILED = 2
EXIT_INIT_FAILED = 3


class StartupError(Exception):
    """Worker cannot start."""

    def __init__(self, message: str, exit_code: int):
        self.exit_code = exit_code
        super().__init__(message)


async def check_dependencies() -> None:
    """Verify required configuration and that the database answers."""
    if not settings.database_url:
        raise StartupError("DATABASE_URL is not set", EXIT_DEPENDENCY_CHECK_FAILED)

    try:
        await with_exponential_backoff(ping_db, "database ping", CRITICAL)
    except Exception as e:
        raise StartupError(f"database unreachable: {e}", EXIT_DEPENDENCY_CHECK_FAILED) from e

    if not settings.strava_oauth_configured:
        logger.warning("Strava OAuth client is not configured; token refresh will fail")
    if not settings.google_oauth_configured:
        logger.warning("Google OAuth client is not configured; token refresh will fail")


async def build_dispatcher() -> JobDispatcher:
    """Create tables and wire the worker, queue and dispatcher."""
    try:
        await init_db()
        config_service = ConfigService(AsyncSessionLocal)
        worker = SyncWorker(config_service, token_store=config_service)

        queue = None
        if settings.redis_url:
            queue = RedisJobQueue.from_url(settings.redis_url, settings.queue_name)
            await with_exponential_backoff(queue.ping, "redis ping", CRITICAL)
            logger.info(f"Using Redis job queue '{settings.queue_name}'")
    except Exception as e:
        raise StartupError(f"initialization failed: {e}", EXIT_INIT_FAILED) from e

    return JobDispatcher(worker, queue)


async def main() -> int:
    """Main entry point."""
    logger.info(f"Starting sync worker ({settings.environment}, {settings.max_workers} workers)")

    try:
        await check_dependencies()
        dispatcher = await build_dispatcher()
    except StartupError as e:
        logger.critical(f"Startup failed: {e}")
        return e.exit_code

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.create_task(dispatcher.stop()))
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    try:
        await dispatcher.run()
    finally:
        if isinstance(dispatcher.queue, RedisJobQueue):
            await dispatcher.queue.close()

    logger.info("Sync worker stopped")
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
