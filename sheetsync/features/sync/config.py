"""
Sync dispatch constants.

Tunable values live in Settings; these stay fixed.
"""


class SyncConfig:
    """Configuration for job dispatch behavior."""

    # Jobs buffered between the dequeuer and the workers, per worker
    PENDING_JOBS_PER_WORKER = 1

    # How long stop() waits for in-flight jobs before cancelling them (seconds)
    SHUTDOWN_GRACE_SECONDS = 30

    # Trace ids are uuid4 hex truncated to this length
    TRACE_ID_LENGTH = 16
