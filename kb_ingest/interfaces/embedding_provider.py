"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations may wrap OpenAI ``text-embedding-ada-002`` or any
OpenAI-compatible embedding endpoint.  Batching, whitespace normalisation
and rate limiting live one level up in
:class:`~kb_ingest.services.embedding_client.EmbeddingClient`; providers only
translate one batch into one API call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider - text-embedding-ada-002 (requires API key)
# Located in: kb_ingest/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion pipeline.

    Embeddings are consumed by
    :class:`~kb_ingest.interfaces.vector_store.IVectorStore` for indexing
    and query-time similarity search.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for one batch of texts.

        Parameters
        ----------
        texts:
            Non-empty strings, at most :meth:`get_max_batch_size` of them.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        kb_ingest.utils.errors.EmbeddingError
            If the embedding API call fails.
        kb_ingest.utils.errors.RateLimitError
            If the provider rejects the call for exceeding its rate limit.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        This value must remain constant for the lifetime of the provider
        instance and must match the dimension configured in the vector store.
        """

    @abstractmethod
    def get_max_batch_size(self) -> int:
        """Return the largest number of texts accepted by a single :meth:`embed` call."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
