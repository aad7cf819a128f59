"""Data structures for the job lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..results.result_models import NormalizedResult


def utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(tz=timezone.utc)


class JobState(StrEnum):
    """Lifecycle states for persisted jobs."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobState.PENDING


class DispatchMode(StrEnum):
    SYNC = "sync"
    ASYNC = "async"


@dataclass(slots=True)
class JobRequest:
    """Caller-submitted job envelope."""

    job_type: str | None
    parameters: dict[str, Any] | None
    caller_id: str | None
    job_id: str | None = None
    device_token: str | None = None


@dataclass(slots=True)
class Job:
    """Snapshot of a persisted job record."""

    id: str
    job_type: str
    parameters: dict[str, Any]
    caller_id: str
    state: JobState = JobState.PENDING
    notification_target: str | None = None
    vendor_request_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    result_reference: str | None = None
    result: NormalizedResult | None = None
    error_detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.id,
            "jobType": self.job_type,
            "state": self.state.value,
            "callerId": self.caller_id,
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "resultReference": self.result_reference,
            "result": self.result.to_dict() if self.result else None,
            "errorDetail": self.error_detail,
        }


@dataclass(slots=True)
class Acknowledgement:
    """Returned to callers of the asynchronous path."""

    job_id: str
    message: str = "Job started successfully"

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "jobId": self.job_id}
