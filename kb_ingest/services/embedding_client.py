"""Batched, rate-limited embedding of fragment texts.

Wraps an :class:`~kb_ingest.interfaces.embedding_provider.IEmbeddingProvider`
and adds the behaviour the pipeline relies on:

- inputs are whitespace-normalised (runs of whitespace collapse to one space);
- entries that are empty after normalisation get an all-zero vector at their
  original position and are never sent to the provider;
- non-empty entries are sent in batches of ``batch_size``, with a fixed pause
  of ``rate_limit_delay`` seconds between consecutive batches;
- any provider failure aborts the whole call as an ``EmbeddingError``, so a
  partially embedded document is never stored.
"""

from __future__ import annotations

import asyncio
import re
import time

import structlog

from kb_ingest.interfaces.embedding_provider import IEmbeddingProvider
from kb_ingest.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to a single space and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


class EmbeddingClient:
    """Embeds lists of texts through a provider, preserving order and length.

    Parameters
    ----------
    provider:
        The embedding backend.
    batch_size:
        Texts per provider call (default 100); clamped to the provider's
        own maximum.
    rate_limit_delay:
        Seconds to wait between consecutive provider calls (default 0.1).
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        batch_size: int = 100,
        rate_limit_delay: float = 0.1,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._provider = provider
        self._batch_size = min(batch_size, provider.get_max_batch_size())
        self._rate_limit_delay = max(0.0, rate_limit_delay)
        self._dimension = provider.get_dimension()

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order.

        Raises
        ------
        EmbeddingError
            If the provider fails, or returns the wrong number of vectors or
            a vector of the wrong dimension.
        """
        if not texts:
            return []

        results: list[list[float] | None] = [None] * len(texts)
        pending: list[tuple[int, str]] = []
        for position, text in enumerate(texts):
            cleaned = normalize_text(text)
            if cleaned:
                pending.append((position, cleaned))
            else:
                results[position] = self._zero_vector()

        start_time = time.monotonic()
        batches = 0
        for offset in range(0, len(pending), self._batch_size):
            if batches > 0 and self._rate_limit_delay > 0:
                await asyncio.sleep(self._rate_limit_delay)

            batch = pending[offset : offset + self._batch_size]
            vectors = await self._call_provider([text for _, text in batch])
            for (position, _), vector in zip(batch, vectors, strict=True):
                results[position] = vector
            batches += 1

        logger.info(
            "embedding_batch_complete",
            provider=self._provider.get_provider_name(),
            texts=len(texts),
            embedded=len(pending),
            zero_vectors=len(texts) - len(pending),
            batches=batches,
            duration_s=round(time.monotonic() - start_time, 3),
        )
        return [vector for vector in results if vector is not None]

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query.

        Raises
        ------
        EmbeddingError
            If the query is empty after normalisation or the provider fails.
        """
        cleaned = normalize_text(text)
        if not cleaned:
            raise EmbeddingError(
                message="Search query is empty",
                provider_name=self._provider.get_provider_name(),
            )
        vectors = await self._call_provider([cleaned])
        return vectors[0]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _zero_vector(self) -> list[float]:
        return [0.0] * self._dimension

    async def _call_provider(self, texts: list[str]) -> list[list[float]]:
        provider_name = self._provider.get_provider_name()
        try:
            vectors = await self._provider.embed(texts)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                message=f"Embedding provider call failed: {exc}",
                provider_name=provider_name,
            ) from exc

        if len(vectors) != len(texts):
            raise EmbeddingError(
                message=f"Provider returned {len(vectors)} vectors for {len(texts)} texts",
                provider_name=provider_name,
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    message=(
                        f"Provider returned a {len(vector)}-dim vector, "
                        f"expected {self._dimension}"
                    ),
                    provider_name=provider_name,
                )
        return [list(vector) for vector in vectors]
