"""Abstract base class for the processing-job queue backend.

A backend holds :class:`~kb_ingest.models.jobs.ProcessDocumentJob` objects in
three places: *waiting* (ready now, ordered by priority rank then enqueue
time), *delayed* (retry scheduled for later; counted as waiting) and *active*
(reserved by a worker).  It also keeps lifetime completed/failed counters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kb_ingest.models.jobs import ProcessDocumentJob, QueueStatus


# Concrete implementations:
#   MemoryQueueBackend - in-process heap (single process, not durable)
#   RedisQueueBackend  - redis.asyncio sorted sets (durable, multi-process)
# Located in: kb_ingest/providers/queue/
class IJobQueueBackend(ABC):
    """Contract for priority job storage shared by dispatchers and workers."""

    @abstractmethod
    async def add(self, job: ProcessDocumentJob, delay: float = 0.0) -> str:
        """Enqueue *job*, optionally not before *delay* seconds from now.

        Returns the job id.

        Raises
        ------
        kb_ingest.utils.errors.QueueError
            If the backend cannot accept the job.
        """

    @abstractmethod
    async def reserve(self, timeout: float = 1.0) -> ProcessDocumentJob | None:
        """Move the highest-priority ready job to *active* and return it.

        Waits up to *timeout* seconds; returns ``None`` when nothing is ready.
        """

    @abstractmethod
    async def complete(self, job: ProcessDocumentJob) -> None:
        """Remove *job* from *active* and count it as completed."""

    @abstractmethod
    async def fail(
        self,
        job: ProcessDocumentJob,
        error: str,
        retry_delay: float | None = None,
    ) -> None:
        """Remove *job* from *active* after a failed attempt.

        With a *retry_delay* the job is rescheduled (attempts incremented,
        ``last_error`` recorded); without one it is counted as failed.
        """

    @abstractmethod
    async def counts(self) -> QueueStatus:
        """Return current waiting/active counts and lifetime completed/failed."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"memory"`` or ``"redis"``."""

    async def close(self) -> None:  # noqa: B027
        """Release connections.  Default is a no-op."""
