"""Upload, re-enqueue and delete operations on knowledge bases.

This service owns the write paths that touch more than one store:

- **upload** writes the raw bytes, creates a ``pending`` document row and
  hands the document to the dispatcher;
- **delete** removes fragments first, then the blob, then the row, and
  finally refreshes the knowledge base's vector count.

Blob deletion failures are logged and skipped since an orphaned file is
harmless.  Fragment deletion failures propagate; the row is kept so the
delete can be retried.
"""

from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from kb_ingest.models.document import Document, DocumentStatus
from kb_ingest.models.jobs import JobPriority
from kb_ingest.utils.errors import DocumentNotFoundError, StorageError

if TYPE_CHECKING:
    from kb_ingest.interfaces.blob_storage import IBlobStorage
    from kb_ingest.interfaces.document_repository import IDocumentRepository
    from kb_ingest.interfaces.job_dispatcher import IJobDispatcher
    from kb_ingest.interfaces.vector_store import IVectorStore

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^\w.\-]+")


def safe_file_name(file_name: str) -> str:
    """Reduce *file_name* to a single path segment usable in a blob locator."""
    name = _UNSAFE_NAME_CHARS.sub("_", Path(file_name).name).strip("._")
    return name or "upload"


class KnowledgeBaseService:
    """Coordinates blob storage, metadata, vectors and dispatch."""

    def __init__(
        self,
        repository: IDocumentRepository,
        blob_storage: IBlobStorage,
        vector_store: IVectorStore,
        dispatcher: IJobDispatcher,
    ) -> None:
        self._repository = repository
        self._blob_storage = blob_storage
        self._vector_store = vector_store
        self._dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Uploads and processing
    # ------------------------------------------------------------------

    async def upload_document(
        self,
        knowledge_base_id: str,
        file_name: str,
        data: bytes,
        declared_type: str | None = None,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> Document:
        """Store an uploaded file and schedule it for processing.

        The declared type defaults to the file name's extension.  If the
        dispatcher rejects the job the document stays ``pending`` and can be
        re-enqueued later.

        Returns
        -------
        Document
            The document row as it stands after dispatch.  In inline mode it
            is already ``indexed`` or ``failed``.
        """
        document_id = str(uuid.uuid4())
        if declared_type is None:
            declared_type = Path(file_name).suffix.lower().lstrip(".")
        log = logger.bind(knowledge_base_id=knowledge_base_id, document_id=document_id)

        await self._repository.ensure_knowledge_base(knowledge_base_id)
        locator = f"{knowledge_base_id}/{document_id}/{safe_file_name(file_name)}"
        await self._blob_storage.upload(locator, data)

        document = await self._repository.create_document(
            Document(
                document_id=document_id,
                knowledge_base_id=knowledge_base_id,
                file_name=file_name,
                declared_type=declared_type,
                size_bytes=len(data),
                storage_locator=locator,
            )
        )
        log.info(
            "document_uploaded",
            file_name=file_name,
            declared_type=declared_type,
            size_bytes=len(data),
        )

        try:
            await self._dispatcher.dispatch(document_id, priority)
        except Exception as exc:
            log.warning("document_enqueue_failed", error=str(exc))
            return document

        return await self._repository.get_document(document_id) or document

    async def enqueue_document(
        self,
        document_id: str,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> str:
        """Reset a document to ``pending`` and dispatch it again.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        """
        document = await self._repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

        await self._repository.update_status(document_id, DocumentStatus.PENDING, error_message=None)
        return await self._dispatcher.dispatch(document_id, priority)

    async def reprocess_knowledge_base(
        self,
        knowledge_base_id: str,
        priority: JobPriority = JobPriority.LOW,
    ) -> list[str]:
        """Re-enqueue every document of a knowledge base; returns the job ids."""
        documents = await self._repository.list_documents(knowledge_base_id)
        job_ids = [await self.enqueue_document(doc.document_id, priority) for doc in documents]
        logger.info(
            "knowledge_base_reprocess_enqueued",
            knowledge_base_id=knowledge_base_id,
            documents=len(job_ids),
        )
        return job_ids

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> Document | None:
        return await self._repository.get_document(document_id)

    async def list_documents(self, knowledge_base_id: str) -> list[Document]:
        return await self._repository.list_documents(knowledge_base_id)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def delete_document(self, document_id: str) -> int:
        """Delete a document with its fragments and raw file.

        Returns
        -------
        int
            Number of fragments removed.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        """
        document = await self._repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

        removed = await self._vector_store.delete_by_document(document_id)
        await self._delete_blob(document)
        await self._repository.delete_document(document_id)

        kb_count = await self._vector_store.count_by_knowledge_base(document.knowledge_base_id)
        await self._repository.update_vector_count(document.knowledge_base_id, kb_count)

        logger.info(
            "document_deleted",
            document_id=document_id,
            knowledge_base_id=document.knowledge_base_id,
            fragments_removed=removed,
        )
        return removed

    async def delete_knowledge_base(self, knowledge_base_id: str) -> int:
        """Delete a knowledge base with all its documents; returns the document count."""
        documents = await self._repository.list_documents(knowledge_base_id)
        for document in documents:
            await self._delete_blob(document)

        removed = await self._vector_store.delete_by_knowledge_base(knowledge_base_id)
        deleted_documents = await self._repository.delete_knowledge_base(knowledge_base_id)

        logger.info(
            "knowledge_base_deleted",
            knowledge_base_id=knowledge_base_id,
            documents=deleted_documents,
            fragments_removed=removed,
        )
        return deleted_documents

    async def _delete_blob(self, document: Document) -> None:
        try:
            await self._blob_storage.delete(document.storage_locator)
        except StorageError as exc:
            logger.warning(
                "blob_delete_failed",
                document_id=document.document_id,
                locator=document.storage_locator,
                error=str(exc),
            )
