"""Job models for queued extractions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Possible states for asynchronous jobs."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobMetadata(BaseModel):
    """Metadata associated with an extraction job."""

    job_id: str
    job_type: str = "critical_css"
    status: JobStatus = JobStatus.queued
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    error: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None

    def _updated(self, **changes: Any) -> "JobMetadata":
        return self.model_copy(update={**changes, "updated_at": _now()})

    def with_status(self, status: JobStatus) -> "JobMetadata":
        """Return a copy with an updated status."""

        return self._updated(status=status)

    def with_result(self, result: Dict[str, Any]) -> "JobMetadata":
        """Return a completed copy carrying the extraction result."""

        return self._updated(result=result, status=JobStatus.completed)

    def with_error(self, message: str) -> "JobMetadata":
        """Return a failed copy with an error message."""

        return self._updated(error=message, status=JobStatus.failed)
