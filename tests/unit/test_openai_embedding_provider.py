"""Unit tests for the OpenAI embedding provider adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from kb_ingest.config.settings import Settings
from kb_ingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from kb_ingest.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    ProviderUnavailableError,
    RateLimitError,
)

_PATCH_TARGET = "kb_ingest.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI"
_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _settings(**overrides) -> Settings:
    defaults = {
        "_env_file": None,
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_embedding_model": "text-embedding-ada-002",
        "embedding_dimension": 1536,
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _response(vectors: list[list[float]], indexes: list[int] | None = None) -> MagicMock:
    indexes = indexes if indexes is not None else list(range(len(vectors)))
    response = MagicMock()
    response.data = [MagicMock(embedding=v, index=i) for v, i in zip(vectors, indexes)]
    response.usage = MagicMock(total_tokens=12)
    return response


def _client(**create_kwargs) -> AsyncMock:
    client = AsyncMock()
    client.embeddings.create = AsyncMock(**create_kwargs)
    return client


class TestConstruction:
    def test_missing_key_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            OpenAIEmbeddingProvider(_settings(openai_api_key=""))

    def test_defaults(self) -> None:
        with patch(_PATCH_TARGET) as mock_cls:
            provider = OpenAIEmbeddingProvider(_settings())

        mock_cls.assert_called_once_with(api_key="sk-test")
        assert provider.get_dimension() == 1536
        assert provider.get_max_batch_size() == 2048
        assert provider.get_provider_name() == "openai_embedding"
        assert provider.is_available() is True

    def test_custom_base_url(self) -> None:
        with patch(_PATCH_TARGET) as mock_cls:
            provider = OpenAIEmbeddingProvider(_settings(openai_base_url="http://localhost:8080/v1"))

        mock_cls.assert_called_once_with(api_key="sk-test", base_url="http://localhost:8080/v1")
        assert provider.get_provider_name() == "openai-compatible_embedding"


class TestEmbed:
    @pytest.mark.asyncio
    async def test_returns_vectors_in_input_order(self) -> None:
        client = _client(return_value=_response([[0.2] * 1536, [0.1] * 1536], indexes=[1, 0]))
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            vectors = await provider.embed(["first", "second"])

        assert vectors[0][0] == pytest.approx(0.1)
        assert vectors[1][0] == pytest.approx(0.2)
        client.embeddings.create.assert_awaited_once_with(
            input=["first", "second"], model="text-embedding-ada-002"
        )

    @pytest.mark.asyncio
    async def test_dimensions_sent_when_reduced(self) -> None:
        client = _client(return_value=_response([[0.1] * 256]))
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(
                _settings(openai_embedding_model="text-embedding-3-small", embedding_dimension=256)
            )
            await provider.embed(["text"])

        assert client.embeddings.create.await_args.kwargs["dimensions"] == 256

    @pytest.mark.asyncio
    async def test_empty_input_skips_api(self) -> None:
        client = _client(return_value=_response([]))
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            assert await provider.embed([]) == []
        client.embeddings.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_batch_rejected(self) -> None:
        with patch(_PATCH_TARGET, return_value=_client()):
            provider = OpenAIEmbeddingProvider(_settings())
            with pytest.raises(EmbeddingError, match="exceeds"):
                await provider.embed(["x"] * 2049)


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_api_error(self) -> None:
        client = _client(
            side_effect=openai.APIError(message="Server exploded", request=MagicMock(), body=None)
        )
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            with pytest.raises(EmbeddingError, match="Server exploded"):
                await provider.embed(["test"])

    @pytest.mark.asyncio
    async def test_rate_limit(self) -> None:
        client = _client(
            side_effect=openai.RateLimitError(
                "Too many requests",
                response=httpx.Response(429, request=_REQUEST),
                body=None,
            )
        )
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            with pytest.raises(RateLimitError):
                await provider.embed(["test"])

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        client = _client(side_effect=openai.APIConnectionError(request=_REQUEST))
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            with pytest.raises(ProviderUnavailableError):
                await provider.embed(["test"])
