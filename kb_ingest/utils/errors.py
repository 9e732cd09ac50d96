"""Custom exception hierarchy for kb-ingest.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "openai", "pgvector", "redis") caused the failure.

The hierarchy is organized by pipeline stage:

    KnowledgeBaseError  (base -- catch-all for any kb-ingest error)
    +-- ParseError               (document bytes -> text)
    +-- ChunkingError            (text -> fragments)
    +-- EmbeddingError           (fragments -> vectors)
    |   +-- RateLimitError       (provider rate-limit exceeded)
    +-- StorageError             (vector store, blob storage, metadata DB)
    +-- QueueError               (job queue backend)
    +-- ConfigurationError       (startup / invalid config)
    +-- DocumentNotFoundError    (job references a missing document)
    +-- ProviderUnavailableError (external service down / unreachable)

Each class declares a ``retryable`` flag.  The worker pool consults it to
decide whether a failed job is rescheduled with backoff or failed terminally.
"""


class KnowledgeBaseError(Exception):
    """Base exception for all kb-ingest errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Document processing errors
# ---------------------------------------------------------------------------

class ParseError(KnowledgeBaseError):
    """Raised when a document cannot be turned into text (corrupt, unsupported, empty)."""

    retryable = False

    def __init__(
        self,
        message: str = "Document could not be parsed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ChunkingError(KnowledgeBaseError):
    """Raised when parsed text yields no usable fragments."""

    retryable = False

    def __init__(
        self,
        message: str = "No chunks generated from document",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(KnowledgeBaseError):
    """Raised when the embedding provider fails or returns malformed vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(EmbeddingError):
    """Raised when an embedding API rate limit is exceeded.

    Retryable: the worker pool reschedules the job with exponential backoff.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / infrastructure errors
# ---------------------------------------------------------------------------

class StorageError(KnowledgeBaseError):
    """Raised when the vector store, blob storage or metadata store fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QueueError(KnowledgeBaseError):
    """Raised when the job queue backend cannot accept or hand out jobs."""

    def __init__(
        self,
        message: str = "Job queue operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(KnowledgeBaseError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Terminal errors
# ---------------------------------------------------------------------------

class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    retryable = False

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(KnowledgeBaseError):
    """Raised when a job or request references a document that does not exist."""

    retryable = False

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


def is_retryable(exc: BaseException) -> bool:
    """Return whether a failed job should be rescheduled after *exc*.

    Exceptions outside the hierarchy (network blips, driver errors) are
    treated as transient.
    """
    if isinstance(exc, KnowledgeBaseError):
        return exc.retryable
    return True
