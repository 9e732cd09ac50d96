"""Abstract base class for the fragment vector store.

The vector store persists :class:`~kb_ingest.models.fragment.Fragment`
objects and answers cosine-similarity queries scoped to one or more
knowledge bases.  Scores are ``1 - cosine_distance``; fragments whose
embedding is missing or all-zero never appear in results.

Ordering contract for every search: score descending, then ``chunk_index``
ascending, then ``document_id`` ascending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kb_ingest.models.fragment import Fragment, SearchResult


# Concrete implementations:
#   PgVectorStore        - PostgreSQL + pgvector (production)
#   ChromaDBVectorStore  - local persistent ChromaDB collection
# Located in: kb_ingest/providers/vector_store/
class IVectorStore(ABC):
    """Contract for fragment persistence and similarity search."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / collections / indexes if they do not exist.  Idempotent."""

    @abstractmethod
    async def insert_fragments(self, fragments: list[Fragment]) -> int:
        """Persist *fragments* in batches.

        Returns
        -------
        int
            Number of fragments written.

        Raises
        ------
        kb_ingest.utils.errors.StorageError
            If the backend rejects the write.
        """

    @abstractmethod
    async def search(
        self,
        knowledge_base_id: str,
        query_vector: list[float],
        top_k: int = 5,
        min_score: float = 0.7,
    ) -> list[SearchResult]:
        """Return the *top_k* most similar fragments of one knowledge base.

        Parameters
        ----------
        knowledge_base_id:
            Knowledge base to search.
        query_vector:
            Query embedding with the store's dimension.
        top_k:
            Maximum number of results; must be positive.
        min_score:
            Minimum score in ``[0, 1]``; results below it are dropped.

        Raises
        ------
        ValueError
            If *top_k* or *min_score* is out of range.
        kb_ingest.utils.errors.StorageError
            If the backend query fails.
        """

    @abstractmethod
    async def search_multiple(
        self,
        knowledge_base_ids: list[str],
        query_vector: list[float],
        top_k: int = 5,
        min_score: float = 0.7,
    ) -> list[SearchResult]:
        """Like :meth:`search`, but over the union of several knowledge bases.

        Returns a single globally ranked list.  An empty id list returns ``[]``.
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every fragment of a document.  Idempotent; returns the count deleted."""

    @abstractmethod
    async def delete_by_knowledge_base(self, knowledge_base_id: str) -> int:
        """Delete every fragment of a knowledge base.  Idempotent; returns the count deleted."""

    @abstractmethod
    async def count_by_document(self, document_id: str) -> int:
        """Return the number of stored fragments for a document."""

    @abstractmethod
    async def count_by_knowledge_base(self, knowledge_base_id: str) -> int:
        """Return the number of stored fragments for a knowledge base."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"pgvector"`` or ``"chromadb"``."""

    async def close(self) -> None:  # noqa: B027
        """Release connections.  Default is a no-op."""


def validate_search_args(top_k: int, min_score: float) -> None:
    """Raise ``ValueError`` for out-of-range search parameters."""
    if top_k <= 0:
        raise ValueError(f"top_k must be positive, got {top_k}")
    if not 0.0 <= min_score <= 1.0:
        raise ValueError(f"min_score must be within [0, 1], got {min_score}")


def ranking_key(result: SearchResult) -> tuple[float, int, str]:
    """Sort key implementing the search ordering contract."""
    return (-result.score, result.chunk_index, result.document_id)
