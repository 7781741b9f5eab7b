"""
Sync job queue.

Jobs are JSON documents on a Redis list: producers LPUSH, the worker
BRPOP's, so jobs are served oldest first.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol

import redis.asyncio as redis
from pydantic import BaseModel, Field, ValidationError

from sheetsync.shared.tokens import utcnow

logger = logging.getLogger(__name__)

JOB_TYPE_SYNC = "sync"


class Job(BaseModel):
    """One user-identified sync request."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str = JOB_TYPE_SYNC
    user_id: int
    trace_id: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    trigger_type: str = "scheduled"


class JobQueue(Protocol):
    """Transport for sync jobs."""

    async def dequeue(self, timeout: float) -> Optional[Job]:
        """Block up to timeout seconds; None when nothing arrived."""
        ...

    async def enqueue(self, job: Job) -> None:
        ...


class RedisJobQueue:
    """
    JobQueue on a Redis list.

    Usage:
        queue = RedisJobQueue.from_url(settings.redis_url)
        job = await queue.dequeue(timeout=60)
    """

    def __init__(self, client: redis.Redis, queue_name: str = "jobs_queue"):
        self._redis = client
        self.queue_name = queue_name

    @classmethod
    def from_url(cls, url: str, queue_name: str = "jobs_queue") -> "RedisJobQueue":
        return cls(redis.from_url(url, decode_responses=True), queue_name)

    async def enqueue(self, job: Job) -> None:
        await self._redis.lpush(self.queue_name, job.model_dump_json())
        logger.debug(f"Enqueued job {job.id} for user {job.user_id} on {self.queue_name}")

    async def dequeue(self, timeout: float) -> Optional[Job]:
        """
        Pop the oldest job, waiting up to timeout seconds.

        Malformed payloads are logged and dropped so one bad message
        cannot wedge the queue.
        """
        item = await self._redis.brpop([self.queue_name], timeout=timeout)
        if item is None:
            return None

        _, raw = item
        try:
            return Job.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Dropping malformed job from {self.queue_name}: {e}; payload={raw!r:.200}")
            return None

    async def ping(self) -> None:
        await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()
