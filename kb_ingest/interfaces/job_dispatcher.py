"""Abstract base class for document-processing dispatch.

Two strategies exist and one is chosen at startup: an asynchronous
dispatcher backed by a job queue and worker pool, and an inline dispatcher
that processes the document before returning.  Both drive the same
document state machine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kb_ingest.models.jobs import JobPriority, QueueStatus


# Concrete implementations:
#   AsyncDispatcher  - queue backend + worker pool
#   InlineDispatcher - direct call into the document processor
# Located in: kb_ingest/pipeline/dispatcher.py
class IJobDispatcher(ABC):
    """Contract for handing a document to the processing pipeline."""

    @abstractmethod
    async def start(self) -> None:
        """Start background workers, if any.  Idempotent."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop background workers, waiting for in-flight jobs to finish."""

    @abstractmethod
    async def dispatch(self, document_id: str, priority: JobPriority) -> str:
        """Schedule (or run) processing of *document_id*.  Returns the job id."""

    @abstractmethod
    async def status(self) -> QueueStatus:
        """Return queue counters for this dispatcher."""

    @abstractmethod
    def get_mode(self) -> str:
        """Return ``"async"`` or ``"inline"``."""
