"""Fragment, search-result and chunking models.

A fragment is the fundamental unit of the vector store: one chunk of a
document's text together with its embedding.  Fragments are replaced
wholesale every time a document is processed; their ids are never reused.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from kb_ingest.utils.errors import ConfigurationError


# ---------------------------------------------------------------------------
# ChunkingConfig
# ---------------------------------------------------------------------------
class ChunkingConfig(BaseModel):
    """Parameters for :class:`~kb_ingest.services.chunker.TextChunker`.

    Sizes are measured in characters.  Invalid combinations raise
    :class:`~kb_ingest.utils.errors.ConfigurationError` at construction so a
    bad config never reaches the first document.
    """

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=500, description="Maximum characters per chunk.")
    overlap: int = Field(
        default=50,
        description="Characters carried over from the end of the previous chunk.",
    )
    # Empty separator means "treat the whole text as one segment".
    separator: str = Field(default="\n", description="Segment boundary string.")

    @model_validator(mode="after")
    def _check_sizes(self) -> ChunkingConfig:
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.overlap < 0:
            raise ConfigurationError(f"overlap must be non-negative, got {self.overlap}")
        if self.overlap >= self.chunk_size:
            raise ConfigurationError(
                f"overlap ({self.overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self


# ---------------------------------------------------------------------------
# Fragment
# ---------------------------------------------------------------------------
class Fragment(BaseModel):
    """A chunk of document text with its embedding, ready for the vector store."""

    model_config = ConfigDict(frozen=True)

    fragment_id: str = Field(description="Fresh UUID assigned on every processing run.")
    document_id: str = Field(description="Document this fragment was cut from.")
    knowledge_base_id: str = Field(description="Knowledge base the document belongs to.")
    # 0-based, contiguous and unique within a document.
    chunk_index: int = Field(ge=0)
    content: str = Field(min_length=1)
    # All-zero vector marks a chunk whose text was empty after normalisation.
    embedding: list[float] = Field(description="Fixed-dimension embedding vector.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description='Provenance: "source" (file name), "file_type", "chunk_size".',
    )

    @property
    def is_zero_vector(self) -> bool:
        return not any(self.embedding)


# ---------------------------------------------------------------------------
# SearchResult
# ---------------------------------------------------------------------------
class SearchResult(BaseModel):
    """One ranked hit returned by a similarity search."""

    model_config = ConfigDict(frozen=True)

    fragment_id: str
    document_id: str
    chunk_index: int = Field(ge=0)
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    # 1 - cosine distance; higher is more similar.
    score: float
    # Filled in by the search service from the document repository.
    file_name: str | None = Field(default=None)
