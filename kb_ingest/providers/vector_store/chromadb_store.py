"""ChromaDB vector store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStore`.
All fragments live in one collection using cosine distance; knowledge-base
and document scoping are metadata ``where`` clauses.  Fully local, no
external service required.
"""

from __future__ import annotations

import json
import os
from typing import Any

# Must be set before chromadb is imported to keep telemetry off.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from kb_ingest.interfaces.vector_store import IVectorStore, ranking_key, validate_search_args
from kb_ingest.models.fragment import Fragment, SearchResult
from kb_ingest.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_INSERT_BATCH_SIZE = 100
# Extra candidates fetched so that ties at the top_k boundary can be
# re-ordered by chunk_index / document_id after the query.
_OVERFETCH_FACTOR = 4


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Every fragment and query arrives with a pre-computed vector; passing this
    stops ChromaDB from downloading its default ONNX model.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "kb-ingest uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBVectorStore(IVectorStore):
    """Vector store backed by a ChromaDB collection with local persistence.

    Each stored item carries ``knowledge_base_id``, ``document_id``,
    ``chunk_index``, a ``zero_vector`` flag and the fragment metadata as a
    JSON string.  Fragments flagged as zero vectors are excluded from search.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "kb_fragments",
        client: Any | None = None,
        insert_batch_size: int = _INSERT_BATCH_SIZE,
    ) -> None:
        if insert_batch_size < 1:
            raise ValueError(f"insert_batch_size must be at least 1, got {insert_batch_size}")
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._insert_batch_size = insert_batch_size
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection: Any | None = None

    # ------------------------------------------------------------------
    # IVectorStore implementation
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._collection is not None:
            return
        try:
            self._collection = self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB collection setup failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info(
            "chromadb_initialized",
            collection=self._collection_name,
            persist_directory=self._persist_directory,
            count=self._collection.count(),
        )

    async def insert_fragments(self, fragments: list[Fragment]) -> int:
        if not fragments:
            return 0
        collection = await self._get_collection()

        try:
            for start in range(0, len(fragments), self._insert_batch_size):
                batch = fragments[start : start + self._insert_batch_size]
                collection.add(
                    ids=[f.fragment_id for f in batch],
                    embeddings=[f.embedding for f in batch],
                    documents=[f.content for f in batch],
                    metadatas=[self._fragment_to_metadata(f) for f in batch],
                )
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB insert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chromadb_insert_fragments",
            count=len(fragments),
            batches=(len(fragments) + self._insert_batch_size - 1) // self._insert_batch_size,
        )
        return len(fragments)

    async def search(
        self,
        knowledge_base_id: str,
        query_vector: list[float],
        top_k: int = 5,
        min_score: float = 0.7,
    ) -> list[SearchResult]:
        return await self._search([knowledge_base_id], query_vector, top_k, min_score)

    async def search_multiple(
        self,
        knowledge_base_ids: list[str],
        query_vector: list[float],
        top_k: int = 5,
        min_score: float = 0.7,
    ) -> list[SearchResult]:
        return await self._search(knowledge_base_ids, query_vector, top_k, min_score)

    async def delete_by_document(self, document_id: str) -> int:
        deleted = await self._delete_where({"document_id": document_id})
        logger.info("chromadb_delete_by_document", document_id=document_id, deleted_count=deleted)
        return deleted

    async def delete_by_knowledge_base(self, knowledge_base_id: str) -> int:
        deleted = await self._delete_where({"knowledge_base_id": knowledge_base_id})
        logger.info(
            "chromadb_delete_by_knowledge_base",
            knowledge_base_id=knowledge_base_id,
            deleted_count=deleted,
        )
        return deleted

    async def count_by_document(self, document_id: str) -> int:
        return len(await self._ids_where({"document_id": document_id}))

    async def count_by_knowledge_base(self, knowledge_base_id: str) -> int:
        return len(await self._ids_where({"knowledge_base_id": knowledge_base_id}))

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_collection(self) -> Any:
        if self._collection is None:
            await self.initialize()
        return self._collection

    async def _search(
        self,
        knowledge_base_ids: list[str],
        query_vector: list[float],
        top_k: int,
        min_score: float,
    ) -> list[SearchResult]:
        validate_search_args(top_k, min_score)
        if not knowledge_base_ids:
            return []
        collection = await self._get_collection()

        where = {
            "$and": [
                {"knowledge_base_id": {"$in": list(knowledge_base_ids)}},
                {"zero_vector": False},
            ]
        }
        try:
            total = collection.count()
            if total == 0:
                return []
            results = collection.query(
                query_embeddings=[query_vector],
                n_results=min(total, top_k * _OVERFETCH_FACTOR),
                where=where,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results["ids"] or not results["ids"][0]:
            return []

        hits: list[SearchResult] = []
        for fragment_id, content, meta, distance in zip(
            results["ids"][0],
            results["documents"][0],
            results["metadatas"][0],
            results["distances"][0],
            strict=True,
        ):
            score = 1.0 - float(distance)
            if score < min_score:
                continue
            hits.append(
                SearchResult(
                    fragment_id=fragment_id,
                    document_id=str(meta["document_id"]),
                    chunk_index=int(meta["chunk_index"]),
                    content=content or "",
                    metadata=json.loads(meta.get("metadata_json") or "{}"),
                    score=score,
                )
            )

        ranked = sorted(hits, key=ranking_key)[:top_k]
        logger.info(
            "chromadb_search",
            knowledge_bases=len(knowledge_base_ids),
            raw_results=len(results["ids"][0]),
            results_count=len(ranked),
            top_score=ranked[0].score if ranked else 0.0,
        )
        return ranked

    async def _ids_where(self, where: dict[str, Any]) -> list[str]:
        collection = await self._get_collection()
        try:
            existing = collection.get(where=where, include=[])
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB get failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return list(existing["ids"] or [])

    async def _delete_where(self, where: dict[str, Any]) -> int:
        ids = await self._ids_where(where)
        if not ids:
            return 0
        collection = await self._get_collection()
        try:
            collection.delete(ids=ids)
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return len(ids)

    @staticmethod
    def _fragment_to_metadata(fragment: Fragment) -> dict[str, Any]:
        return {
            "knowledge_base_id": fragment.knowledge_base_id,
            "document_id": fragment.document_id,
            "chunk_index": fragment.chunk_index,
            "zero_vector": fragment.is_zero_vector,
            "metadata_json": json.dumps(fragment.metadata, sort_keys=True),
        }
