"""
Job dispatch loop.

Queue mode: one dequeuer pulls jobs from the JobQueue and hands them to
a fixed pool of workers through a bounded asyncio.Queue. Each job runs
under its own timeout.

Timer mode (no queue configured, local development): the test user is
synced on a fixed interval.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sheetsync.config import Settings, settings as default_settings
from .config import SyncConfig
from .queue import Job, JobQueue
from .result import ErrorKind, ProcessingResult
from .worker import SyncWorker, new_trace_id

logger = logging.getLogger(__name__)


@dataclass
class DispatcherStats:
    """Counters since start."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    in_flight: int = 0
    dequeue_errors: int = 0
    requeued: int = 0


class JobDispatcher:
    """
    Runs sync jobs from a queue (or a timer) until stopped.

    Call `run()` to block until `stop()` is called.

    Usage:
        dispatcher = JobDispatcher(worker, queue)
        task = asyncio.create_task(dispatcher.run())
        # ... later ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        worker: SyncWorker,
        queue: Optional[JobQueue] = None,
        settings: Optional[Settings] = None,
    ):
        self.worker = worker
        self.queue = queue
        self.settings = settings or default_settings
        self._stats = DispatcherStats()
        self._running = False
        self._cancelling = False
        self._stopped = asyncio.Event()
        self._wake = asyncio.Event()
        self._dequeuer: Optional[asyncio.Task] = None
        self._tasks: list[asyncio.Task] = []
        self._pending: Optional["asyncio.Queue[Job]"] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def mode(self) -> str:
        return "queue" if self.queue is not None else "timer"

    def stats(self) -> DispatcherStats:
        return DispatcherStats(**vars(self._stats))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Dispatch jobs until stop() is called."""
        if self._running:
            return
        self._running = True
        self._cancelling = False
        self._stopped.clear()
        self._wake.clear()
        logger.info(f"Job dispatcher started in {self.mode} mode")

        if self.queue is not None:
            self._pending = pending = asyncio.Queue(
                maxsize=self.settings.max_workers * SyncConfig.PENDING_JOBS_PER_WORKER
            )
            self._dequeuer = asyncio.create_task(self._dequeue_loop(pending), name="dequeuer")
            self._tasks = [
                asyncio.create_task(self._worker_loop(i, pending), name=f"sync-worker-{i}")
                for i in range(self.settings.max_workers)
            ]
        else:
            logger.warning(
                f"No job queue configured, syncing test user {self.settings.test_user_id} "
                f"every {self.settings.test_mode_interval_seconds}s"
            )
            self._tasks = [asyncio.create_task(self._timer_loop(), name="timer")]

        await self._stopped.wait()

    async def stop(self) -> None:
        """
        Stop dequeuing, give in-flight jobs a grace period, then cancel.

        Jobs taken off the queue but not started by then are put back.
        """
        if not self._running:
            return
        self._running = False
        self._wake.set()

        # No new jobs once stopping
        if self._dequeuer is not None:
            self._dequeuer.cancel()
            await asyncio.gather(self._dequeuer, return_exceptions=True)
            self._dequeuer = None

        tasks, self._tasks = self._tasks, []
        if tasks:
            _, still_running = await asyncio.wait(tasks, timeout=SyncConfig.SHUTDOWN_GRACE_SECONDS)
            if still_running:
                logger.warning(f"Cancelling {len(still_running)} sync worker(s) after grace period")
                self._cancelling = True
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)

        await self._requeue_pending()

        self._stopped.set()
        logger.info(f"Job dispatcher stopped: {self.stats()}")

    # -------------------------------------------------------------------------
    # Queue Mode
    # -------------------------------------------------------------------------

    async def _dequeue_loop(self, pending: "asyncio.Queue[Job]") -> None:
        while self._running:
            try:
                job = await self.queue.dequeue(self.settings.dequeue_timeout_seconds)
            except Exception as e:
                self._stats.dequeue_errors += 1
                logger.error(
                    f"Failed to dequeue job: {e}; retrying in "
                    f"{self.settings.dequeue_error_backoff_seconds}s"
                )
                await asyncio.sleep(self.settings.dequeue_error_backoff_seconds)
                continue

            if job is None:
                continue

            logger.info(f"Dequeued job {job.id} for user {job.user_id} ({job.trigger_type})")
            try:
                await pending.put(job)
            except asyncio.CancelledError:
                await self._requeue(job)
                raise

    async def _worker_loop(self, index: int, pending: "asyncio.Queue[Job]") -> None:
        # Drains buffered jobs during the grace period; never starts one once cancelling
        while (self._running or not pending.empty()) and not self._cancelling:
            try:
                job = await asyncio.wait_for(pending.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                result = await self._run_job(
                    job.user_id, job.trace_id or new_trace_id(), self.settings.job_timeout_seconds
                )
            finally:
                pending.task_done()
            if result is not None and result.error_kind == ErrorKind.CANCELLED:
                break

    async def _requeue(self, job: Job) -> None:
        """Return a dequeued but unstarted job to the queue."""
        try:
            await self.queue.enqueue(job)
        except Exception as e:
            logger.error(f"Lost job {job.id} for user {job.user_id} during shutdown: {e}")
            return
        self._stats.requeued += 1
        logger.info(f"Requeued job {job.id} for user {job.user_id}")

    async def _requeue_pending(self) -> None:
        if self._pending is None:
            return
        while not self._pending.empty():
            await self._requeue(self._pending.get_nowait())
        self._pending = None

    # -------------------------------------------------------------------------
    # Timer Mode
    # -------------------------------------------------------------------------

    async def _timer_loop(self) -> None:
        while self._running:
            await self._run_job(
                self.settings.test_user_id,
                new_trace_id(),
                self.settings.test_mode_timeout_seconds,
            )
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.settings.test_mode_interval_seconds)
            except asyncio.TimeoutError:
                pass

    # -------------------------------------------------------------------------
    # Job Execution
    # -------------------------------------------------------------------------

    async def _run_job(self, user_id: int, trace_id: str, timeout: float) -> Optional[ProcessingResult]:
        """Run one job; errors are counted, never raised."""
        self._stats.in_flight += 1
        try:
            result = await self.worker.process_user(user_id, trace_id=trace_id, timeout=timeout)
        except Exception as e:
            logger.exception(f"Job for user {user_id} crashed (trace {trace_id}): {e}")
            result = None
        finally:
            self._stats.in_flight -= 1

        self._stats.processed += 1
        if result is not None and result.success:
            self._stats.succeeded += 1
        elif result is not None and result.skipped:
            self._stats.skipped += 1
        else:
            self._stats.failed += 1
        return result
