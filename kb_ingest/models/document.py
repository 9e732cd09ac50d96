"""Document and knowledge-base models.

A :class:`Document` is one uploaded file inside a :class:`KnowledgeBase`.
Its ``status`` walks a small state machine driven exclusively by the
document processor::

    pending --> processing --> indexed
                           \\-> failed

Re-enqueueing a document resets it to ``pending`` and clears the error.
All models use frozen config; state changes go through the document
repository, which hands back fresh instances.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Lifecycle state of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    INDEXED = "indexed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """Metadata row for an uploaded file.

    The raw bytes live in blob storage under ``storage_locator``; the
    fragments derived from them live in the vector store keyed by
    ``document_id``.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Unique identifier (UUID) of the document.")
    knowledge_base_id: str = Field(description="Owning knowledge base.")
    file_name: str = Field(description="Original file name as uploaded.")
    # Extension or MIME type, e.g. "pdf", "docx", "text/plain".
    declared_type: str = Field(description="File type declared at upload time.")
    size_bytes: int = Field(default=0, ge=0, description="Size of the raw upload in bytes.")
    storage_locator: str = Field(description="Key of the raw bytes in blob storage.")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    # Number of live fragments; only meaningful once status is INDEXED.
    fragment_count: int = Field(default=0, ge=0)
    error_message: str | None = Field(
        default=None,
        description="Reason for the last failure; set whenever status is FAILED.",
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_status_invariants(self) -> Document:
        if self.status is DocumentStatus.FAILED and not self.error_message:
            raise ValueError("a failed document must carry an error_message")
        if self.status is DocumentStatus.INDEXED and self.fragment_count == 0:
            raise ValueError("an indexed document must have at least one fragment")
        return self


# ---------------------------------------------------------------------------
# KnowledgeBase
# ---------------------------------------------------------------------------
class KnowledgeBase(BaseModel):
    """A tenant-scoped collection of documents searched as one unit."""

    model_config = ConfigDict(frozen=True)

    knowledge_base_id: str = Field(description="Unique identifier of the knowledge base.")
    name: str = Field(default="", description="Human-readable name.")
    # Refreshed from the vector store after every processing run.
    vector_count: int = Field(default=0, ge=0)
    document_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
