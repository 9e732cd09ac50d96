"""Public interface definitions for every external collaborator.

Every external service in the ingestion pipeline is accessed exclusively
through the abstract base classes defined in this package.  Concrete
adapters implement these interfaces and are injected at runtime, so unit
tests can substitute deterministic fakes.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementations
    ────────────────────────────────────────────────────────────────
    IEmbeddingProvider   →  OpenAIEmbeddingProvider
    IVectorStore         →  PgVectorStore, ChromaDBVectorStore
    IDocumentParser      →  FormatDocumentParser
    IBlobStorage         →  LocalBlobStorage
    IDocumentRepository  →  SQLiteDocumentRepository
    IJobQueueBackend     →  MemoryQueueBackend, RedisQueueBackend
    IJobDispatcher       →  AsyncDispatcher, InlineDispatcher
"""

from kb_ingest.interfaces.blob_storage import IBlobStorage
from kb_ingest.interfaces.document_parser import IDocumentParser
from kb_ingest.interfaces.document_repository import IDocumentRepository
from kb_ingest.interfaces.embedding_provider import IEmbeddingProvider
from kb_ingest.interfaces.job_dispatcher import IJobDispatcher
from kb_ingest.interfaces.job_queue_backend import IJobQueueBackend
from kb_ingest.interfaces.vector_store import IVectorStore

__all__ = [
    "IBlobStorage",
    "IDocumentParser",
    "IDocumentRepository",
    "IEmbeddingProvider",
    "IJobDispatcher",
    "IJobQueueBackend",
    "IVectorStore",
]
