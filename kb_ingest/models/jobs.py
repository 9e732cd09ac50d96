"""Job queue models: priorities, processing jobs and queue counters."""

from __future__ import annotations

import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Lower rank dequeues first.
_PRIORITY_RANK: dict[str, int] = {
    "high": 1,
    "normal": 5,
    "low": 10,
}


class JobPriority(str, Enum):
    """Dispatch priority of a processing job."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self.value]


class ProcessDocumentJob(BaseModel):
    """A request to (re)process one document, as carried by the queue backend."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_id: str
    priority: JobPriority = Field(default=JobPriority.NORMAL)
    # Incremented by the worker pool before every retry.
    attempts_made: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    # Epoch seconds; ties within a priority dequeue in FIFO order.
    enqueued_at: float = Field(default_factory=time.time)
    last_error: str | None = Field(default=None)


class QueueStatus(BaseModel):
    """Snapshot of job counts across the queue's lifetime."""

    model_config = ConfigDict(frozen=True)

    waiting: int = Field(default=0, ge=0, description="Jobs ready or scheduled for retry.")
    active: int = Field(default=0, ge=0, description="Jobs currently being processed.")
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0, description="Jobs that exhausted their attempts.")


class ProcessingResult(BaseModel):
    """Outcome of a successful document processing run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    fragment_count: int = Field(ge=1)
    duration_seconds: float = Field(ge=0.0)
