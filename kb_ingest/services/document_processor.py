"""Per-document processing state machine.

Pipeline stages: **download -> parse -> chunk -> embed -> replace -> count**.

The :class:`DocumentProcessor` is the only component that moves a document
out of ``pending``.  Each call to :meth:`DocumentProcessor.process`:

    1. loads the document row (missing -> DocumentNotFoundError, no writes)
    2. marks it ``processing``
    3. downloads the raw bytes from blob storage (missing file ->
       DocumentNotFoundError, which is never retried)
    4. parses them to text (empty text -> ParseError)
    5. chunks the text (no chunks -> ChunkingError)
    6. embeds every chunk
    7. deletes the document's previous fragments
    8. inserts the new fragments
    9. refreshes the document and knowledge-base fragment counts
   10. marks it ``indexed``

Old fragments are deleted only after embedding succeeded, so a provider
outage leaves the previously indexed version searchable.  Any failure marks
the document ``failed`` with the error message and re-raises, letting the
worker pool decide about retries.  The processor holds no state between
calls.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog

from kb_ingest.models.document import DocumentStatus
from kb_ingest.models.fragment import Fragment
from kb_ingest.models.jobs import ProcessingResult
from kb_ingest.utils.errors import ChunkingError, DocumentNotFoundError, ParseError, StorageError
from kb_ingest.utils.file_types import normalize_declared_type

if TYPE_CHECKING:
    from kb_ingest.interfaces.blob_storage import IBlobStorage
    from kb_ingest.interfaces.document_parser import IDocumentParser
    from kb_ingest.interfaces.document_repository import IDocumentRepository
    from kb_ingest.interfaces.vector_store import IVectorStore
    from kb_ingest.models.document import Document
    from kb_ingest.services.chunker import TextChunker
    from kb_ingest.services.embedding_client import EmbeddingClient

logger = structlog.get_logger(logger_name=__name__)


class DocumentProcessor:
    """Drives one document through the ingestion pipeline.

    All dependencies are injected via constructor so each can be replaced
    with a fake in tests.

    Parameters
    ----------
    repository:
        Document / knowledge-base metadata store.
    blob_storage:
        Source of the raw uploaded bytes.
    parser:
        Turns raw bytes into text.
    chunker:
        Splits text into bounded, overlapping chunks.
    embedding_client:
        Batches chunk texts through the embedding provider.
    vector_store:
        Persists fragments and reports counts.
    """

    def __init__(
        self,
        repository: IDocumentRepository,
        blob_storage: IBlobStorage,
        parser: IDocumentParser,
        chunker: TextChunker,
        embedding_client: EmbeddingClient,
        vector_store: IVectorStore,
    ) -> None:
        self._repository = repository
        self._blob_storage = blob_storage
        self._parser = parser
        self._chunker = chunker
        self._embedding_client = embedding_client
        self._vector_store = vector_store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(self, document_id: str) -> ProcessingResult:
        """Process one document end to end.

        Returns
        -------
        ProcessingResult
            Fragment count and wall-clock duration of the run.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist (nothing is written).
        KnowledgeBaseError
            Any stage failure, after the document was marked ``failed``.
        """
        document = await self._repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

        start_time = time.monotonic()
        log = logger.bind(document_id=document_id, knowledge_base_id=document.knowledge_base_id)
        log.info("document_processing_started", file_name=document.file_name)

        await self._repository.update_status(document_id, DocumentStatus.PROCESSING)

        try:
            fragment_count = await self._run_stages(document, log)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            log.error(
                "document_processing_failed",
                error=message,
                error_type=type(exc).__name__,
            )
            await self._repository.update_status(
                document_id,
                DocumentStatus.FAILED,
                error_message=message,
            )
            raise

        duration = time.monotonic() - start_time
        log.info(
            "document_processing_complete",
            fragments=fragment_count,
            duration_s=round(duration, 3),
        )
        return ProcessingResult(
            document_id=document_id,
            fragment_count=fragment_count,
            duration_seconds=duration,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stages(self, document: Document, log: structlog.BoundLogger) -> int:
        document_id = document.document_id

        if not await self._blob_storage.exists(document.storage_locator):
            raise DocumentNotFoundError(
                message=f"Stored file {document.storage_locator!r} is missing"
            )
        data = await self._blob_storage.download(document.storage_locator)

        text = await self._parser.parse(data, document.declared_type, document.file_name)
        if not text or not text.strip():
            raise ParseError(message="Document is empty or could not be parsed")

        chunks = self._chunker.chunk(text)
        if not chunks:
            raise ChunkingError(message="No chunks generated from document")
        log.debug("document_chunked", chunks=len(chunks), text_length=len(text))

        embeddings = await self._embedding_client.embed_batch(chunks)

        file_type = normalize_declared_type(document.declared_type, document.file_name)
        fragments = [
            Fragment(
                fragment_id=str(uuid.uuid4()),
                document_id=document_id,
                knowledge_base_id=document.knowledge_base_id,
                chunk_index=index,
                content=content,
                embedding=embedding,
                metadata={
                    "source": document.file_name,
                    "file_type": file_type,
                    "chunk_size": len(content),
                },
            )
            for index, (content, embedding) in enumerate(zip(chunks, embeddings, strict=True))
        ]

        replaced = await self._vector_store.delete_by_document(document_id)
        await self._vector_store.insert_fragments(fragments)
        log.debug("fragments_replaced", removed=replaced, inserted=len(fragments))

        fragment_count = await self._vector_store.count_by_document(document_id)
        if fragment_count == 0:
            raise StorageError(
                message="Vector store reports no fragments after insert",
                provider_name=self._vector_store.get_provider_name(),
            )
        kb_count = await self._vector_store.count_by_knowledge_base(document.knowledge_base_id)
        await self._repository.update_vector_count(document.knowledge_base_id, kb_count)

        await self._repository.update_status(
            document_id,
            DocumentStatus.INDEXED,
            fragment_count=fragment_count,
            error_message=None,
        )
        return fragment_count
