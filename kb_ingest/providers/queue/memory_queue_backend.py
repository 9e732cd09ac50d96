"""In-process priority queue backend.

Keeps jobs in a heap ordered by (priority rank, enqueue time, sequence) and
retries in a second heap ordered by ready time.  Suitable for a single
long-running process and for tests; nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools

import structlog

from kb_ingest.interfaces.job_queue_backend import IJobQueueBackend
from kb_ingest.models.jobs import ProcessDocumentJob, QueueStatus

logger = structlog.get_logger(logger_name=__name__)


class MemoryQueueBackend(IJobQueueBackend):
    """Priority job queue held in memory."""

    def __init__(self) -> None:
        self._waiting: list[tuple[int, float, int, ProcessDocumentJob]] = []
        self._delayed: list[tuple[float, int, ProcessDocumentJob]] = []
        self._active: dict[str, ProcessDocumentJob] = {}
        self._completed = 0
        self._failed = 0
        self._sequence = itertools.count()
        self._condition = asyncio.Condition()

    # ------------------------------------------------------------------
    # IJobQueueBackend implementation
    # ------------------------------------------------------------------

    async def add(self, job: ProcessDocumentJob, delay: float = 0.0) -> str:
        async with self._condition:
            if delay > 0:
                ready_at = asyncio.get_running_loop().time() + delay
                heapq.heappush(self._delayed, (ready_at, next(self._sequence), job))
            else:
                self._push_waiting(job)
            self._condition.notify_all()
        logger.debug(
            "job_added",
            backend="memory",
            job_id=job.job_id,
            document_id=job.document_id,
            priority=job.priority.value,
            delay_s=delay,
        )
        return job.job_id

    async def reserve(self, timeout: float = 1.0) -> ProcessDocumentJob | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0.0, timeout)

        async with self._condition:
            while True:
                now = loop.time()
                self._promote_due(now)
                if self._waiting:
                    _, _, _, job = heapq.heappop(self._waiting)
                    self._active[job.job_id] = job
                    return job

                remaining = deadline - now
                if remaining <= 0:
                    return None
                wait_for = remaining
                if self._delayed:
                    wait_for = min(wait_for, max(0.0, self._delayed[0][0] - now))
                try:
                    await asyncio.wait_for(self._condition.wait(), timeout=wait_for)
                except asyncio.TimeoutError:
                    pass

    async def complete(self, job: ProcessDocumentJob) -> None:
        async with self._condition:
            self._active.pop(job.job_id, None)
            self._completed += 1

    async def fail(
        self,
        job: ProcessDocumentJob,
        error: str,
        retry_delay: float | None = None,
    ) -> None:
        async with self._condition:
            self._active.pop(job.job_id, None)
            if retry_delay is None:
                self._failed += 1
                return
            # Requeued inside the lock; counts never see the job missing.
            retry = job.model_copy(
                update={"attempts_made": job.attempts_made + 1, "last_error": error}
            )
            ready_at = asyncio.get_running_loop().time() + max(0.0, retry_delay)
            heapq.heappush(self._delayed, (ready_at, next(self._sequence), retry))
            self._condition.notify_all()
        logger.debug(
            "job_retry_delayed",
            backend="memory",
            job_id=job.job_id,
            attempts_made=retry.attempts_made,
            delay_s=retry_delay,
        )

    async def counts(self) -> QueueStatus:
        async with self._condition:
            return QueueStatus(
                waiting=len(self._waiting) + len(self._delayed),
                active=len(self._active),
                completed=self._completed,
                failed=self._failed,
            )

    def get_provider_name(self) -> str:
        return "memory"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _push_waiting(self, job: ProcessDocumentJob) -> None:
        heapq.heappush(
            self._waiting,
            (job.priority.rank, job.enqueued_at, next(self._sequence), job),
        )

    def _promote_due(self, now: float) -> None:
        while self._delayed and self._delayed[0][0] <= now:
            _, _, job = heapq.heappop(self._delayed)
            self._push_waiting(job)
