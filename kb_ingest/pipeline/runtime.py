"""Composition root: builds every component from :class:`Settings`.

:class:`IngestionRuntime` is the explicit handle callers hold on to.  It is
built once (``IngestionRuntime.from_settings``), initialised once
(``initialize`` is idempotent) and torn down with ``shutdown``::

    runtime = IngestionRuntime.from_settings(settings)
    await runtime.initialize()
    document = await runtime.knowledge_bases.upload_document("kb-1", "a.txt", b"...")
    results = await runtime.search_knowledge_base("kb-1", "query")
    await runtime.shutdown()

Provider selection:

- vector store: ``vector_backend`` = ``chromadb`` (default) or ``pgvector``
- dispatch: ``queue_backend`` = ``auto`` (Redis when ``REDIS_URL`` is set,
  inline otherwise), ``redis``, ``memory`` or ``inline``
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from kb_ingest.models.jobs import JobPriority, QueueStatus
from kb_ingest.pipeline.dispatcher import AsyncDispatcher, InlineDispatcher
from kb_ingest.pipeline.retry import RetryPolicy
from kb_ingest.providers.parser.format_parser import FormatDocumentParser
from kb_ingest.providers.repository.sqlite_document_repository import SQLiteDocumentRepository
from kb_ingest.providers.storage.local_blob_storage import LocalBlobStorage
from kb_ingest.services.chunker import TextChunker
from kb_ingest.services.document_processor import DocumentProcessor
from kb_ingest.services.embedding_client import EmbeddingClient
from kb_ingest.services.knowledge_base_service import KnowledgeBaseService
from kb_ingest.services.search_service import SearchService
from kb_ingest.utils.errors import ConfigurationError

if TYPE_CHECKING:
    from kb_ingest.config.settings import Settings
    from kb_ingest.interfaces.document_repository import IDocumentRepository
    from kb_ingest.interfaces.embedding_provider import IEmbeddingProvider
    from kb_ingest.interfaces.job_dispatcher import IJobDispatcher
    from kb_ingest.interfaces.job_queue_backend import IJobQueueBackend
    from kb_ingest.interfaces.vector_store import IVectorStore
    from kb_ingest.models.fragment import SearchResult

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the OpenAI embedding provider; raises ConfigurationError without a key."""
    from kb_ingest.providers.embedding.openai_embedding_provider import (
        OpenAIEmbeddingProvider,
    )

    return OpenAIEmbeddingProvider(settings=app_settings)


def _build_vector_store(app_settings: Settings) -> IVectorStore:
    backend = app_settings.validate_vector_backend()
    if backend == "pgvector":
        from kb_ingest.providers.vector_store.pgvector_store import PgVectorStore

        return PgVectorStore(
            database_url=app_settings.database_url,
            dimension=app_settings.embedding_dimension,
            table_name=app_settings.pgvector_table,
            insert_batch_size=app_settings.vector_insert_batch_size,
        )

    from kb_ingest.providers.vector_store.chromadb_store import ChromaDBVectorStore

    return ChromaDBVectorStore(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        insert_batch_size=app_settings.vector_insert_batch_size,
    )


def _build_queue_backend(app_settings: Settings, mode: str) -> IJobQueueBackend | None:
    if mode == "redis":
        from kb_ingest.providers.queue.redis_queue_backend import RedisQueueBackend

        return RedisQueueBackend(
            redis_url=app_settings.redis_url,
            queue_name=app_settings.queue_name,
        )
    if mode == "memory":
        from kb_ingest.providers.queue.memory_queue_backend import MemoryQueueBackend

        return MemoryQueueBackend()
    return None


# ---------------------------------------------------------------------------
# Runtime handle
# ---------------------------------------------------------------------------


class IngestionRuntime:
    """Owns the wired components and their lifecycle."""

    def __init__(
        self,
        repository: IDocumentRepository,
        vector_store: IVectorStore,
        processor: DocumentProcessor,
        dispatcher: IJobDispatcher,
        knowledge_bases: KnowledgeBaseService,
        search_service: SearchService,
        queue_backend: IJobQueueBackend | None = None,
    ) -> None:
        self._repository = repository
        self._vector_store = vector_store
        self._processor = processor
        self._dispatcher = dispatcher
        self._knowledge_bases = knowledge_bases
        self._search_service = search_service
        self._queue_backend = queue_backend
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings,
        *,
        embedding_provider: IEmbeddingProvider | None = None,
        vector_store: IVectorStore | None = None,
        queue_backend: IJobQueueBackend | None = None,
        run_workers: bool = True,
    ) -> IngestionRuntime:
        """Build every component from *app_settings*.

        Parameters
        ----------
        embedding_provider, vector_store, queue_backend:
            Optional pre-built replacements for the configured providers.
            Passing a queue backend forces asynchronous dispatch.
        run_workers:
            Whether this process drains the queue.  Ignored in inline mode.

        Raises
        ------
        ConfigurationError
            For invalid chunking parameters, an unknown backend name, a
            missing ``DATABASE_URL``/``REDIS_URL`` for the selected backend,
            a missing OpenAI API key, or an embedding provider that reports
            itself unavailable.
        """
        chunker = TextChunker(app_settings.chunking_config())
        mode = "async" if queue_backend is not None else app_settings.resolved_queue_backend()

        provider = embedding_provider or _build_embedding_provider(app_settings)
        if not provider.is_available():
            raise ConfigurationError(
                message="Embedding provider is not configured",
                provider_name=provider.get_provider_name(),
            )
        embedding_client = EmbeddingClient(
            provider,
            batch_size=app_settings.embedding_batch_size,
            rate_limit_delay=app_settings.embedding_rate_limit_delay,
        )
        store = vector_store or _build_vector_store(app_settings)
        repository = SQLiteDocumentRepository(app_settings.metadata_db_path)
        blob_storage = LocalBlobStorage(app_settings.blob_storage_dir)

        processor = DocumentProcessor(
            repository=repository,
            blob_storage=blob_storage,
            parser=FormatDocumentParser(),
            chunker=chunker,
            embedding_client=embedding_client,
            vector_store=store,
        )

        backend = queue_backend or _build_queue_backend(app_settings, mode)
        dispatcher: IJobDispatcher
        if backend is None:
            dispatcher = InlineDispatcher(processor)
        else:
            dispatcher = AsyncDispatcher(
                backend=backend,
                processor=processor,
                retry_policy=RetryPolicy(
                    max_attempts=app_settings.queue_max_attempts,
                    backoff_base=app_settings.queue_backoff_base_seconds,
                ),
                concurrency=app_settings.queue_concurrency,
                poll_timeout=app_settings.queue_poll_timeout,
                dedupe=app_settings.queue_dedupe_in_flight,
                run_workers=run_workers,
            )

        logger.info(
            "runtime_built",
            embedding_provider=provider.get_provider_name(),
            vector_store=store.get_provider_name(),
            dispatch_mode=dispatcher.get_mode(),
            queue_backend=backend.get_provider_name() if backend else None,
        )
        return cls(
            repository=repository,
            vector_store=store,
            processor=processor,
            dispatcher=dispatcher,
            knowledge_bases=KnowledgeBaseService(
                repository=repository,
                blob_storage=blob_storage,
                vector_store=store,
                dispatcher=dispatcher,
            ),
            search_service=SearchService(
                embedding_client=embedding_client,
                vector_store=store,
                repository=repository,
                default_top_k=app_settings.search_default_top_k,
                default_min_score=app_settings.search_default_min_score,
            ),
            queue_backend=backend,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def knowledge_bases(self) -> KnowledgeBaseService:
        return self._knowledge_bases

    @property
    def knowledge_base_service(self) -> KnowledgeBaseService:
        return self._knowledge_bases

    @property
    def processor(self) -> DocumentProcessor:
        return self._processor

    @property
    def dispatcher(self) -> IJobDispatcher:
        return self._dispatcher

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create tables and collections and start workers.  Safe to call repeatedly."""
        async with self._init_lock:
            if self._initialized:
                return
            await self._repository.initialize()
            await self._vector_store.initialize()
            await self._dispatcher.start()
            self._initialized = True
        logger.info("runtime_initialized", dispatch_mode=self._dispatcher.get_mode())

    async def shutdown(self) -> None:
        """Stop workers after their current jobs, then close connections."""
        async with self._init_lock:
            await self._dispatcher.stop()
            if self._queue_backend is not None:
                await self._queue_backend.close()
            await self._vector_store.close()
            self._initialized = False
        logger.info("runtime_shutdown")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue_document(
        self,
        document_id: str,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> str:
        """Reset a document to ``pending`` and schedule it; returns the job id."""
        await self.initialize()
        return await self._knowledge_bases.enqueue_document(document_id, priority)

    async def search_knowledge_base(
        self,
        knowledge_base_id: str,
        query: str,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchResult]:
        await self.initialize()
        return await self._search_service.search(knowledge_base_id, query, top_k, min_score)

    async def search_knowledge_bases(
        self,
        knowledge_base_ids: list[str],
        query: str,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchResult]:
        await self.initialize()
        return await self._search_service.search_many(knowledge_base_ids, query, top_k, min_score)

    async def get_queue_status(self) -> QueueStatus:
        """Return queue counters; inline mode reports its own tallies."""
        return await self._dispatcher.status()
