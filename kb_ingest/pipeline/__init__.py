"""Job dispatch: retry policy, worker pool, dispatchers and the runtime handle."""

from kb_ingest.pipeline.dispatcher import AsyncDispatcher, InlineDispatcher
from kb_ingest.pipeline.retry import RetryPolicy
from kb_ingest.pipeline.runtime import IngestionRuntime
from kb_ingest.pipeline.worker import WorkerPool

__all__ = [
    "AsyncDispatcher",
    "InlineDispatcher",
    "IngestionRuntime",
    "RetryPolicy",
    "WorkerPool",
]
