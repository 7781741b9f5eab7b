"""
Sync feature: per-user pipeline and job dispatch.

Usage:
    from sheetsync.features.sync import SyncWorker, JobDispatcher

Components:
- SyncWorker: runs the Strava -> Sheets pipeline for one user
- JobDispatcher: feeds queued jobs to a pool of workers
- RedisJobQueue: Redis list transport for jobs
- ProcessingResult / ErrorKind: outcome of one run
"""

from .result import ErrorKind, ProcessingResult
from .worker import StepFailure, SyncWorker, classify_step_error
from .queue import Job, JobQueue, RedisJobQueue
from .dispatcher import DispatcherStats, JobDispatcher

__all__ = [
    "DispatcherStats",
    "ErrorKind",
    "Job",
    "JobDispatcher",
    "JobQueue",
    "ProcessingResult",
    "RedisJobQueue",
    "StepFailure",
    "SyncWorker",
    "classify_step_error",
]
