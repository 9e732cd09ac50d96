"""Shared pytest fixtures for the kb-ingest test suite."""

from __future__ import annotations

import hashlib
import re
import uuid
from pathlib import Path

import pytest
import pytest_asyncio

from kb_ingest.config.settings import Settings
from kb_ingest.interfaces.embedding_provider import IEmbeddingProvider
from kb_ingest.models.fragment import Fragment

# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------

EMBEDDING_DIM = 32

_TOKEN_RE = re.compile(r"\w+")


def hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector derived from the SHA-256 of *text*."""
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [(b - 127.5) / 127.5 for b in raw[:dim]]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


def bag_of_words_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Token-count vector: texts sharing words get a high cosine similarity.

    Identical texts map to identical vectors (score 1.0).  Text without any
    word characters falls back to :func:`hash_to_vector`.
    """
    tokens = _TOKEN_RE.findall(text.lower())
    if not tokens:
        return hash_to_vector(text, dim)
    values = [0.0] * dim
    for token in tokens:
        bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dim
        values[bucket] += 1.0
    magnitude = sum(v * v for v in values) ** 0.5
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider that records every call."""

    def __init__(self, dimension: int = EMBEDDING_DIM, max_batch_size: int = 2048) -> None:
        self._dimension = dimension
        self._max_batch_size = max_batch_size
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [bag_of_words_vector(t, self._dimension) for t in texts]

    def get_dimension(self) -> int:
        return self._dimension

    def get_max_batch_size(self) -> int:
        return self._max_batch_size

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


def make_fragment(
    document_id: str = "D1",
    knowledge_base_id: str = "K1",
    chunk_index: int = 0,
    content: str | None = None,
    embedding: list[float] | None = None,
) -> Fragment:
    """Build a fragment whose embedding defaults to the bag-of-words of its content."""
    content = content if content is not None else f"fragment {chunk_index} of {document_id}"
    return Fragment(
        fragment_id=str(uuid.uuid4()),
        document_id=document_id,
        knowledge_base_id=knowledge_base_id,
        chunk_index=chunk_index,
        content=content,
        embedding=embedding if embedding is not None else bag_of_words_vector(content),
        metadata={"source": f"{document_id}.txt", "file_type": "text", "chunk_size": len(content)},
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing every store at *tmp_path* with fast queue timings."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test-key",
        embedding_dimension=EMBEDDING_DIM,
        embedding_rate_limit_delay=0.0,
        vector_backend="chromadb",
        chromadb_persist_dir=str(tmp_path / "chromadb"),
        chromadb_collection=f"test_{uuid.uuid4().hex[:8]}",
        metadata_db_path=str(tmp_path / "kb_ingest.db"),
        blob_storage_dir=str(tmp_path / "blobs"),
        queue_backend="memory",
        redis_url="",
        queue_backoff_base_seconds=0.01,
        queue_poll_timeout=0.05,
        search_default_min_score=0.0,
        app_env="test",
    )


@pytest.fixture
def chroma_store(tmp_path: Path):
    """A ChromaDB vector store persisted under *tmp_path*."""
    from kb_ingest.providers.vector_store.chromadb_store import ChromaDBVectorStore

    return ChromaDBVectorStore(
        persist_directory=str(tmp_path / "chromadb_test"),
        collection_name=f"test_{uuid.uuid4().hex[:8]}",
    )


@pytest_asyncio.fixture
async def sqlite_repository(tmp_path: Path):
    """An initialised SQLite document repository under *tmp_path*."""
    from kb_ingest.providers.repository.sqlite_document_repository import (
        SQLiteDocumentRepository,
    )

    repository = SQLiteDocumentRepository(tmp_path / "documents.db")
    await repository.initialize()
    return repository


@pytest.fixture
def blob_storage(tmp_path: Path):
    from kb_ingest.providers.storage.local_blob_storage import LocalBlobStorage

    return LocalBlobStorage(tmp_path / "blobs")
