"""
Outcome of one sync run.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Why a sync run did not succeed."""

    CONFIG_ERROR = "config_error"
    AUTOMATION_DISABLED = "automation_disabled"
    REAUTH_REQUIRED = "reauth_required"
    SHEETS_ACCESS_ERROR = "sheets_access_error"
    FETCH_ERROR = "fetch_error"
    WRITE_ERROR = "write_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class ProcessingResult:
    """
    Result of processing a single user.

    error_type carries the provider-level category (RATE_LIMITED,
    PERMISSION_DENIED, ...) so callers can decide whether to reschedule.
    """

    user_id: int
    success: bool
    activities_count: int = 0
    processing_duration: timedelta = timedelta(0)
    error_message: str = ""
    error_kind: Optional[ErrorKind] = None
    requires_reauth: bool = False
    error_type: Optional[str] = None
    reauth_provider: Optional[str] = None
    trace_id: str = ""

    @property
    def skipped(self) -> bool:
        return self.error_kind == ErrorKind.AUTOMATION_DISABLED

    @property
    def is_rate_limited(self) -> bool:
        return self.error_type == "RATE_LIMITED"

    def to_log_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_id": self.user_id,
            "success": self.success,
            "activities_count": self.activities_count,
            "duration_ms": int(self.processing_duration.total_seconds() * 1000),
            "trace_id": self.trace_id,
        }
        if self.error_kind is not None:
            data["error_kind"] = self.error_kind.value
            data["error_message"] = self.error_message
            data["requires_reauth"] = self.requires_reauth
        if self.error_type:
            data["error_type"] = self.error_type
        if self.reauth_provider:
            data["reauth_provider"] = self.reauth_provider
        return data
