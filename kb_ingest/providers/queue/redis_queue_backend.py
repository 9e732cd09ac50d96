"""Durable priority queue backend on Redis.

Key layout (``<q>`` is the queue name, ``document-processing`` by default):

    <q>:jobs       hash   job_id -> job JSON
    <q>:waiting    zset   job_id scored by rank * 1e13 + enqueue time (ms)
    <q>:delayed    zset   job_id scored by ready time (ms)
    <q>:active     hash   job_id -> reservation time (ms)
    <q>:completed  int    lifetime completed counter
    <q>:failed     int    lifetime failed counter

The waiting score puts every "high" job ahead of every "normal" one and
keeps FIFO order within a priority.  ``reserve`` first promotes due retries
from ``delayed`` to ``waiting`` (``ZREM`` decides which process wins a
promotion), then blocks on ``BZPOPMIN``.
"""

from __future__ import annotations

import time

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from kb_ingest.interfaces.job_queue_backend import IJobQueueBackend
from kb_ingest.models.jobs import ProcessDocumentJob, QueueStatus
from kb_ingest.utils.errors import QueueError

logger = structlog.get_logger(logger_name=__name__)

_PRIORITY_WEIGHT = 1e13
_PROMOTE_BATCH = 100


def _now_ms() -> float:
    return time.time() * 1000.0


def waiting_score(job: ProcessDocumentJob) -> float:
    """Return the ``waiting`` zset score for *job*; lower dequeues first."""
    return job.priority.rank * _PRIORITY_WEIGHT + job.enqueued_at * 1000.0


class RedisQueueBackend(IJobQueueBackend):
    """Priority job queue stored in Redis sorted sets.

    Parameters
    ----------
    redis_url:
        Connection URL, e.g. ``redis://localhost:6379/0``.
    queue_name:
        Key prefix shared by every process using the same queue.
    client:
        Pre-built ``redis.asyncio.Redis`` (with ``decode_responses=True``).
    """

    def __init__(
        self,
        redis_url: str = "",
        queue_name: str = "document-processing",
        client: Redis | None = None,
    ) -> None:
        self._redis = client or Redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._queue_name = queue_name
        self._jobs_key = f"{queue_name}:jobs"
        self._waiting_key = f"{queue_name}:waiting"
        self._delayed_key = f"{queue_name}:delayed"
        self._active_key = f"{queue_name}:active"
        self._completed_key = f"{queue_name}:completed"
        self._failed_key = f"{queue_name}:failed"

    # ------------------------------------------------------------------
    # IJobQueueBackend implementation
    # ------------------------------------------------------------------

    async def add(self, job: ProcessDocumentJob, delay: float = 0.0) -> str:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(self._jobs_key, job.job_id, job.model_dump_json())
                if delay > 0:
                    pipe.zadd(self._delayed_key, {job.job_id: _now_ms() + delay * 1000.0})
                else:
                    pipe.zadd(self._waiting_key, {job.job_id: waiting_score(job)})
                await pipe.execute()
        except RedisError as exc:
            raise QueueError(
                message=f"Could not enqueue job {job.job_id}: {exc}", provider_name="redis"
            ) from exc
        logger.debug(
            "job_added",
            backend="redis",
            job_id=job.job_id,
            document_id=job.document_id,
            priority=job.priority.value,
            delay_s=delay,
        )
        return job.job_id

    async def reserve(self, timeout: float = 1.0) -> ProcessDocumentJob | None:
        try:
            await self._promote_due()
            popped = await self._redis.bzpopmin(self._waiting_key, timeout=timeout)
            if not popped:
                return None
            _, job_id, _ = popped
            payload = await self._redis.hget(self._jobs_key, job_id)
            if payload is None:
                logger.warning("job_payload_missing", job_id=job_id)
                return None
            await self._redis.hset(self._active_key, job_id, str(_now_ms()))
        except RedisError as exc:
            raise QueueError(message=f"Could not reserve job: {exc}", provider_name="redis") from exc
        return ProcessDocumentJob.model_validate_json(payload)

    async def complete(self, job: ProcessDocumentJob) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hdel(self._active_key, job.job_id)
                pipe.hdel(self._jobs_key, job.job_id)
                pipe.incr(self._completed_key)
                await pipe.execute()
        except RedisError as exc:
            raise QueueError(
                message=f"Could not complete job {job.job_id}: {exc}", provider_name="redis"
            ) from exc

    async def fail(
        self,
        job: ProcessDocumentJob,
        error: str,
        retry_delay: float | None = None,
    ) -> None:
        try:
            if retry_delay is None:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.hdel(self._active_key, job.job_id)
                    pipe.hdel(self._jobs_key, job.job_id)
                    pipe.incr(self._failed_key)
                    await pipe.execute()
                return

            retry = job.model_copy(
                update={"attempts_made": job.attempts_made + 1, "last_error": error}
            )
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hdel(self._active_key, job.job_id)
                pipe.hset(self._jobs_key, job.job_id, retry.model_dump_json())
                pipe.zadd(self._delayed_key, {job.job_id: _now_ms() + retry_delay * 1000.0})
                await pipe.execute()
        except RedisError as exc:
            raise QueueError(
                message=f"Could not record failure of job {job.job_id}: {exc}",
                provider_name="redis",
            ) from exc

    async def counts(self) -> QueueStatus:
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.zcard(self._waiting_key)
                pipe.zcard(self._delayed_key)
                pipe.hlen(self._active_key)
                pipe.get(self._completed_key)
                pipe.get(self._failed_key)
                waiting, delayed, active, completed, failed = await pipe.execute()
        except RedisError as exc:
            raise QueueError(
                message=f"Could not read queue counts: {exc}", provider_name="redis"
            ) from exc
        return QueueStatus(
            waiting=int(waiting) + int(delayed),
            active=int(active),
            completed=int(completed or 0),
            failed=int(failed or 0),
        )

    def get_provider_name(self) -> str:
        return "redis"

    async def close(self) -> None:
        await self._redis.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _promote_due(self) -> None:
        due = await self._redis.zrangebyscore(
            self._delayed_key, "-inf", _now_ms(), start=0, num=_PROMOTE_BATCH
        )
        for job_id in due:
            # Only the process whose ZREM succeeds re-queues the job.
            if not await self._redis.zrem(self._delayed_key, job_id):
                continue
            payload = await self._redis.hget(self._jobs_key, job_id)
            if payload is None:
                continue
            job = ProcessDocumentJob.model_validate_json(payload)
            await self._redis.zadd(self._waiting_key, {job_id: waiting_score(job)})
