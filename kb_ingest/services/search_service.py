"""Semantic search over one or more knowledge bases."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kb_ingest.interfaces.vector_store import validate_search_args

if TYPE_CHECKING:
    from kb_ingest.interfaces.document_repository import IDocumentRepository
    from kb_ingest.interfaces.vector_store import IVectorStore
    from kb_ingest.models.fragment import SearchResult
    from kb_ingest.services.embedding_client import EmbeddingClient

logger = structlog.get_logger(logger_name=__name__)


class SearchService:
    """Embeds a query and ranks stored fragments by cosine similarity.

    Results come back best first and carry the owning document's file name
    when the metadata store still knows it.  Documents that failed or are
    still processing simply contribute no fragments.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_store: IVectorStore,
        repository: IDocumentRepository | None = None,
        default_top_k: int = 5,
        default_min_score: float = 0.7,
    ) -> None:
        validate_search_args(default_top_k, default_min_score)
        self._embedding_client = embedding_client
        self._vector_store = vector_store
        self._repository = repository
        self._default_top_k = default_top_k
        self._default_min_score = default_min_score

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        knowledge_base_id: str,
        query: str,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchResult]:
        """Search a single knowledge base."""
        return await self.search_many([knowledge_base_id], query, top_k, min_score)

    async def search_many(
        self,
        knowledge_base_ids: list[str],
        query: str,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchResult]:
        """Search the union of several knowledge bases.

        Raises
        ------
        ValueError
            If ``top_k`` is not positive or ``min_score`` lies outside [0, 1].
        EmbeddingError
            If the query is empty or the provider fails.
        """
        top_k = self._default_top_k if top_k is None else top_k
        min_score = self._default_min_score if min_score is None else min_score
        validate_search_args(top_k, min_score)

        if not knowledge_base_ids:
            return []

        query_vector = await self._embedding_client.embed_query(query)
        if len(knowledge_base_ids) == 1:
            results = await self._vector_store.search(
                knowledge_base_ids[0], query_vector, top_k, min_score
            )
        else:
            results = await self._vector_store.search_multiple(
                knowledge_base_ids, query_vector, top_k, min_score
            )

        results = await self._attach_file_names(results)
        logger.info(
            "search_complete",
            knowledge_base_ids=knowledge_base_ids,
            top_k=top_k,
            min_score=min_score,
            results=len(results),
        )
        return results

    async def _attach_file_names(self, results: list[SearchResult]) -> list[SearchResult]:
        if not results or self._repository is None:
            return results
        names = await self._repository.get_file_names(
            sorted({result.document_id for result in results})
        )
        return [
            result.model_copy(update={"file_name": names.get(result.document_id)})
            for result in results
        ]
