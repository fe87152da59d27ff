"""Job record data model for generation jobs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    REQUESTED = "requested"
    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset(
    {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.EXPIRED, JobStatus.CANCELED}
)


class FileInfo(BaseModel):
    """A generated artifact: storage URI plus a time-limited download URL."""
    gs: str
    https: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None


class JobErrorInfo(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class JobRecord(BaseModel):
    """Tracks the lifecycle of a generation job.

    ``operation_handle`` is set only while an asynchronous model is
    ``starting`` or ``running``.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    model: Optional[str] = None
    status: JobStatus = JobStatus.REQUESTED
    request: Optional[Dict[str, Any]] = None
    response: Optional[Dict[str, Any]] = None
    error: Optional[JobErrorInfo] = None
    files: Dict[str, FileInfo] = Field(default_factory=dict)

    # Assisted mode
    prompt: Optional[str] = None
    ai_assisted: bool = False
    reasons: List[str] = Field(default_factory=list)
    analyzed_at: Optional[datetime] = None

    # Scheduling metadata
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    operation_handle: Optional[str] = None
    attempt: int = 0
    next_poll_at: Optional[datetime] = None
    ttl_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
