"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers via custom
``base_url`` and model name settings.
"""

from __future__ import annotations

import openai
import structlog

from kb_ingest.config.settings import Settings
from kb_ingest.interfaces.embedding_provider import IEmbeddingProvider
from kb_ingest.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-ada-002`` (1536 dims) by default.  For models not
    in the known-dimension table the configured ``embedding_dimension`` is
    used and forwarded as the ``dimensions`` request parameter only when it
    differs from the model's native size.
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise ConfigurationError(
                message="OPENAI_API_KEY is not set; embeddings cannot be generated",
                provider_name="openai_embedding",
            )
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-ada-002"
        self._native_dimension = _MODEL_DIMENSIONS.get(self._model)
        self._dimension = settings.embedding_dimension or self._native_dimension or 1536
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for one batch of texts."""
        if not texts:
            return []
        if len(texts) > _OPENAI_BATCH_LIMIT:
            raise EmbeddingError(
                message=f"Batch of {len(texts)} exceeds the {_OPENAI_BATCH_LIMIT}-input limit",
                provider_name=self._provider_label,
            )

        request: dict = {"input": texts, "model": self._model}
        if self._native_dimension is not None and self._dimension != self._native_dimension:
            request["dimensions"] = self._dimension

        try:
            response = await self._client.embeddings.create(**request)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limit: {exc}",
                provider_name=self._provider_label,
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderUnavailableError(
                message=f"{self._provider_label} unreachable: {exc}",
                provider_name=self._provider_label,
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self._provider_label,
            ) from exc

        # The API may return items out of order; index restores input order.
        items = sorted(response.data, key=lambda item: item.index)
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [list(item.embedding) for item in items]

    def get_dimension(self) -> int:
        return self._dimension

    def get_max_batch_size(self) -> int:
        return _OPENAI_BATCH_LIMIT

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
