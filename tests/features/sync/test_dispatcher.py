"""
Tests for JobDispatcher in queue and timer mode.
"""

import asyncio
from datetime import timedelta

import pytest

from sheetsync.features.sync import ErrorKind, Job, JobDispatcher, ProcessingResult
from sheetsync.features.sync.config import SyncConfig


class FakeQueue:
    """JobQueue backed by an asyncio.Queue; can fail a number of dequeues."""

    def __init__(self, failures: int = 0):
        self.jobs: asyncio.Queue = asyncio.Queue()
        self.failures = failures

    async def enqueue(self, job: Job) -> None:
        await self.jobs.put(job)

    async def dequeue(self, timeout: float):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("redis unavailable")
        try:
            return await asyncio.wait_for(self.jobs.get(), timeout)
        except asyncio.TimeoutError:
            return None


class FakeWorker:
    """
    Records calls; outcome per user id is configurable.

    With catch_cancel the worker turns cancellation into a CANCELLED
    result, as SyncWorker does.
    """

    def __init__(self, outcomes=None, delay: float = 0, catch_cancel: bool = False):
        self.outcomes = outcomes or {}
        self.delay = delay
        self.catch_cancel = catch_cancel
        self.calls: list[tuple[int, str, float]] = []

    async def process_user(self, user_id, trace_id=None, timeout=None):
        self.calls.append((user_id, trace_id, timeout))
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                if not self.catch_cancel:
                    raise
                return ProcessingResult(user_id, False, error_kind=ErrorKind.CANCELLED, trace_id=trace_id)
        outcome = self.outcomes.get(user_id, "success")
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "skip":
            return ProcessingResult(user_id, False, error_kind=ErrorKind.AUTOMATION_DISABLED, trace_id=trace_id)
        if outcome == "fail":
            return ProcessingResult(user_id, False, error_kind=ErrorKind.FETCH_ERROR, trace_id=trace_id)
        return ProcessingResult(user_id, True, 1, timedelta(seconds=1), trace_id=trace_id)


@pytest.fixture
def dispatch_settings(test_settings):
    return test_settings.model_copy(update={
        "max_workers": 2,
        "dequeue_timeout_seconds": 0.05,
        "dequeue_error_backoff_seconds": 0,
        "job_timeout_seconds": 42,
        "test_mode_interval_seconds": 0.01,
        "test_mode_timeout_seconds": 7,
        "test_user_id": 99,
    })


async def wait_for_processed(dispatcher: JobDispatcher, count: int, timeout: float = 2.0) -> None:
    async def _poll():
        while dispatcher.stats().processed < count:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


async def run_until(dispatcher: JobDispatcher, count: int) -> None:
    task = asyncio.create_task(dispatcher.run())
    try:
        await wait_for_processed(dispatcher, count)
    finally:
        await dispatcher.stop()
        await asyncio.wait_for(task, 5)


# =============================================================================
# Test Queue Mode
# =============================================================================

class TestQueueMode:

    async def test_processes_queued_jobs(self, dispatch_settings):
        queue, worker = FakeQueue(), FakeWorker()
        for user_id in (1, 2, 3):
            await queue.enqueue(Job(user_id=user_id, trace_id=f"t-{user_id}"))
        dispatcher = JobDispatcher(worker, queue, dispatch_settings)

        await run_until(dispatcher, 3)

        assert sorted(call[0] for call in worker.calls) == [1, 2, 3]
        assert {call[1] for call in worker.calls} == {"t-1", "t-2", "t-3"}
        assert {call[2] for call in worker.calls} == {42}
        stats = dispatcher.stats()
        assert (stats.processed, stats.succeeded, stats.failed, stats.in_flight) == (3, 3, 0, 0)

    async def test_trace_id_generated_when_missing(self, dispatch_settings):
        queue, worker = FakeQueue(), FakeWorker()
        await queue.enqueue(Job(user_id=1))
        dispatcher = JobDispatcher(worker, queue, dispatch_settings)

        await run_until(dispatcher, 1)

        assert worker.calls[0][1]

    async def test_failures_do_not_stop_the_loop(self, dispatch_settings):
        queue = FakeQueue()
        worker = FakeWorker({1: RuntimeError("crash"), 2: "fail", 3: "skip"})
        for user_id in (1, 2, 3, 4):
            await queue.enqueue(Job(user_id=user_id))
        dispatcher = JobDispatcher(worker, queue, dispatch_settings)

        await run_until(dispatcher, 4)

        stats = dispatcher.stats()
        assert stats.processed == 4
        assert stats.succeeded == 1
        assert stats.failed == 2
        assert stats.skipped == 1

    async def test_dequeue_errors_are_retried(self, dispatch_settings):
        queue, worker = FakeQueue(failures=2), FakeWorker()
        await queue.enqueue(Job(user_id=1))
        dispatcher = JobDispatcher(worker, queue, dispatch_settings)

        await run_until(dispatcher, 1)

        assert dispatcher.stats().dequeue_errors == 2
        assert worker.calls[0][0] == 1

    async def test_jobs_run_concurrently(self, dispatch_settings):
        queue, worker = FakeQueue(), FakeWorker(delay=0.2)
        await queue.enqueue(Job(user_id=1))
        await queue.enqueue(Job(user_id=2))
        dispatcher = JobDispatcher(worker, queue, dispatch_settings)

        loop = asyncio.get_running_loop()
        task = asyncio.create_task(dispatcher.run())
        started = loop.time()
        await wait_for_processed(dispatcher, 2)
        elapsed = loop.time() - started
        await dispatcher.stop()
        await asyncio.wait_for(task, 5)

        assert elapsed < 0.39

    async def test_stop_when_idle(self, dispatch_settings):
        dispatcher = JobDispatcher(FakeWorker(), FakeQueue(), dispatch_settings)
        task = asyncio.create_task(dispatcher.run())
        await asyncio.sleep(0.02)

        assert dispatcher.running
        assert dispatcher.mode == "queue"
        await dispatcher.stop()
        await asyncio.wait_for(task, 5)

        assert not dispatcher.running
        assert dispatcher.stats().processed == 0


# =============================================================================
# Test Shutdown
# =============================================================================

async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


class TestShutdown:

    @pytest.fixture
    def single_worker(self, dispatch_settings):
        return dispatch_settings.model_copy(update={"max_workers": 1})

    async def start_busy(self, queue, worker, settings):
        """One job running, one buffered, one held by the dequeuer."""
        for user_id in (1, 2, 3):
            await queue.enqueue(Job(user_id=user_id))
        dispatcher = JobDispatcher(worker, queue, settings)
        task = asyncio.create_task(dispatcher.run())
        await wait_until(lambda: worker.calls and queue.jobs.empty())
        await asyncio.sleep(0.02)
        return dispatcher, task

    def queued_user_ids(self, queue) -> list[int]:
        ids = []
        while not queue.jobs.empty():
            ids.append(queue.jobs.get_nowait().user_id)
        return sorted(ids)

    async def test_grace_period_drains_buffered_jobs(self, single_worker):
        queue, worker = FakeQueue(), FakeWorker(delay=0.05)
        dispatcher, task = await self.start_busy(queue, worker, single_worker)

        await dispatcher.stop()
        await asyncio.wait_for(task, 5)

        # Job 3 was held by the dequeuer and goes back; 1 and 2 finish
        assert [call[0] for call in worker.calls] == [1, 2]
        assert self.queued_user_ids(queue) == [3]
        stats = dispatcher.stats()
        assert (stats.processed, stats.succeeded, stats.requeued) == (2, 2, 1)

    @pytest.mark.parametrize("catch_cancel", [False, True])
    async def test_cancel_after_grace_requeues_unstarted_jobs(self, single_worker, monkeypatch, catch_cancel):
        monkeypatch.setattr(SyncConfig, "SHUTDOWN_GRACE_SECONDS", 0.05)
        queue, worker = FakeQueue(), FakeWorker(delay=1.0, catch_cancel=catch_cancel)
        dispatcher, task = await self.start_busy(queue, worker, single_worker)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await dispatcher.stop()
        elapsed = loop.time() - started
        await asyncio.wait_for(task, 5)

        assert elapsed < 0.5
        assert [call[0] for call in worker.calls] == [1]
        assert self.queued_user_ids(queue) == [2, 3]
        stats = dispatcher.stats()
        assert stats.requeued == 2
        assert stats.in_flight == 0

    async def test_requeue_failure_is_logged(self, single_worker, monkeypatch, caplog):
        monkeypatch.setattr(SyncConfig, "SHUTDOWN_GRACE_SECONDS", 0.05)
        queue, worker = FakeQueue(), FakeWorker(delay=1.0)
        dispatcher, task = await self.start_busy(queue, worker, single_worker)

        async def broken_enqueue(job):
            raise ConnectionError("redis unavailable")

        monkeypatch.setattr(queue, "enqueue", broken_enqueue)
        await dispatcher.stop()
        await asyncio.wait_for(task, 5)

        assert dispatcher.stats().requeued == 0
        assert caplog.text.count("Lost job") == 2


# =============================================================================
# Test Timer Mode
# =============================================================================

class TestTimerMode:

    async def test_syncs_test_user_on_interval(self, dispatch_settings):
        worker = FakeWorker()
        dispatcher = JobDispatcher(worker, None, dispatch_settings)

        assert dispatcher.mode == "timer"
        await run_until(dispatcher, 2)

        assert {call[0] for call in worker.calls} == {99}
        assert {call[2] for call in worker.calls} == {7}
