"""Unit tests for building an IngestionRuntime from settings."""

from __future__ import annotations

import pytest

from kb_ingest.pipeline.dispatcher import AsyncDispatcher, InlineDispatcher
from kb_ingest.pipeline.runtime import IngestionRuntime
from kb_ingest.utils.errors import ConfigurationError
from tests.conftest import MockEmbeddingProvider


class _UnconfiguredProvider(MockEmbeddingProvider):
    def is_available(self) -> bool:
        return False


class TestFromSettings:
    def test_unavailable_provider_rejected(self, test_settings) -> None:
        with pytest.raises(ConfigurationError, match="not configured"):
            IngestionRuntime.from_settings(
                test_settings, embedding_provider=_UnconfiguredProvider()
            )

    def test_missing_api_key_rejected(self, test_settings) -> None:
        settings = test_settings.model_copy(update={"openai_api_key": ""})

        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            IngestionRuntime.from_settings(settings)

    def test_memory_backend_uses_async_dispatch(self, test_settings) -> None:
        runtime = IngestionRuntime.from_settings(
            test_settings, embedding_provider=MockEmbeddingProvider()
        )
        assert isinstance(runtime.dispatcher, AsyncDispatcher)

    def test_inline_backend(self, test_settings) -> None:
        settings = test_settings.model_copy(update={"queue_backend": "inline"})

        runtime = IngestionRuntime.from_settings(
            settings, embedding_provider=MockEmbeddingProvider()
        )

        assert isinstance(runtime.dispatcher, InlineDispatcher)

