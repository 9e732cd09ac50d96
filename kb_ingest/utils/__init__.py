"""Utility modules for kb-ingest.

- **errors** -- Domain-specific exception hierarchy rooted at
  KnowledgeBaseError; each class declares whether the worker pool may retry it.
- **logging** -- structlog setup: console output in development, JSON lines
  in production, both on stderr.
"""

# -- Domain exception hierarchy --------------------------------------------
from kb_ingest.utils.errors import (
    ChunkingError,
    ConfigurationError,
    DocumentNotFoundError,
    EmbeddingError,
    KnowledgeBaseError,
    ParseError,
    ProviderUnavailableError,
    QueueError,
    RateLimitError,
    StorageError,
    is_retryable,
)

# -- Structured logging setup ----------------------------------------------
from kb_ingest.utils.logging import configure_logging

__all__ = [
    "ChunkingError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "EmbeddingError",
    "KnowledgeBaseError",
    "ParseError",
    "ProviderUnavailableError",
    "QueueError",
    "RateLimitError",
    "StorageError",
    "configure_logging",
    "is_retryable",
]
