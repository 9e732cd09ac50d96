"""Abstract base class for the document / knowledge-base metadata store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kb_ingest.models.document import Document, DocumentStatus, KnowledgeBase


# Concrete implementations:
#   SQLiteDocumentRepository - aiosqlite-backed local database
# Located in: kb_ingest/providers/repository/
class IDocumentRepository(ABC):
    """Contract for persisting document rows and knowledge-base counters.

    Only the document processor changes a document's status (plus the
    runtime's reset to ``pending`` on re-enqueue).
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist.  Idempotent."""

    # -- documents ---------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a new document row and return it."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""

    @abstractmethod
    async def list_documents(self, knowledge_base_id: str) -> list[Document]:
        """Return all documents of a knowledge base, oldest first."""

    @abstractmethod
    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        fragment_count: int | None = None,
        error_message: str | None = None,
    ) -> Document:
        """Write a new status.

        ``error_message`` is stored as given, so passing ``None`` clears a
        previous failure.  ``fragment_count`` is left unchanged when ``None``.

        Raises
        ------
        kb_ingest.utils.errors.DocumentNotFoundError
            If the document does not exist.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document row.  Returns ``False`` if it did not exist."""

    @abstractmethod
    async def get_file_names(self, document_ids: list[str]) -> dict[str, str]:
        """Return ``{document_id: file_name}`` for the ids that exist."""

    # -- knowledge bases ---------------------------------------------------

    @abstractmethod
    async def ensure_knowledge_base(self, knowledge_base_id: str, name: str = "") -> KnowledgeBase:
        """Return the knowledge base, creating an empty one if needed."""

    @abstractmethod
    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase | None:
        """Return the knowledge base, or ``None``."""

    @abstractmethod
    async def update_vector_count(self, knowledge_base_id: str, vector_count: int) -> None:
        """Overwrite the cached vector count of a knowledge base."""

    @abstractmethod
    async def delete_knowledge_base(self, knowledge_base_id: str) -> int:
        """Delete a knowledge base and all its document rows.

        Returns the number of document rows removed.
        """
