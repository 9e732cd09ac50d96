"""Job queue backend implementations.

    MemoryQueueBackend - in-process heap; single process, not durable.
    RedisQueueBackend  - redis.asyncio sorted sets; shared across processes.
"""

from kb_ingest.providers.queue.memory_queue_backend import MemoryQueueBackend
from kb_ingest.providers.queue.redis_queue_backend import RedisQueueBackend

__all__ = ["MemoryQueueBackend", "RedisQueueBackend"]
