"""Dispatch strategies: queue + worker pool, or inline processing.

:class:`AsyncDispatcher` puts a :class:`ProcessDocumentJob` on the queue
backend and, when ``run_workers`` is set, drains it with an in-process
:class:`WorkerPool`.  :class:`InlineDispatcher` runs the document processor
before ``dispatch`` returns and is used when no queue is configured.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

import structlog

from kb_ingest.interfaces.job_dispatcher import IJobDispatcher
from kb_ingest.models.jobs import JobPriority, ProcessDocumentJob, QueueStatus
from kb_ingest.pipeline.retry import RetryPolicy
from kb_ingest.pipeline.worker import WorkerPool

if TYPE_CHECKING:
    from kb_ingest.interfaces.job_queue_backend import IJobQueueBackend
    from kb_ingest.services.document_processor import DocumentProcessor

logger = structlog.get_logger(logger_name=__name__)


class AsyncDispatcher(IJobDispatcher):
    """Queue-backed dispatcher with optional in-process workers.

    Parameters
    ----------
    backend:
        Job queue shared with the workers.
    processor:
        Document processor the workers call for each job.
    retry_policy:
        Attempt budget and backoff for failed jobs.
    concurrency:
        Worker task count.
    poll_timeout:
        Worker reserve timeout in seconds.
    dedupe:
        Coalesce a dispatch for a document that already has a waiting or
        active job into that job.  Only effective with ``run_workers``,
        since settlement is observed through the local worker pool.
    run_workers:
        Start a :class:`WorkerPool` in this process.  Producers that only
        enqueue (e.g. a CLI talking to a shared Redis) pass ``False``.
    """

    def __init__(
        self,
        backend: IJobQueueBackend,
        processor: DocumentProcessor,
        retry_policy: RetryPolicy | None = None,
        concurrency: int = 2,
        poll_timeout: float = 1.0,
        dedupe: bool = True,
        run_workers: bool = True,
    ) -> None:
        self._backend = backend
        self._processor = processor
        self._retry_policy = retry_policy or RetryPolicy()
        self._dedupe = dedupe and run_workers
        self._run_workers = run_workers
        self._in_flight: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._pool = WorkerPool(
            backend=backend,
            handler=self._handle_job,
            retry_policy=self._retry_policy,
            concurrency=concurrency,
            poll_timeout=poll_timeout,
            on_settled=self._on_settled,
        )

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    @property
    def backend(self) -> IJobQueueBackend:
        return self._backend

    async def start(self) -> None:
        if self._run_workers:
            await self._pool.start()

    async def stop(self) -> None:
        await self._pool.stop()

    async def dispatch(self, document_id: str, priority: JobPriority = JobPriority.NORMAL) -> str:
        async with self._lock:
            if self._dedupe:
                existing = self._in_flight.get(document_id)
                if existing is not None:
                    logger.info(
                        "job_coalesced",
                        document_id=document_id,
                        job_id=existing,
                    )
                    return existing

            job = ProcessDocumentJob(
                document_id=document_id,
                priority=priority,
                max_attempts=self._retry_policy.max_attempts,
            )
            await self._backend.add(job)
            if self._dedupe:
                self._in_flight[document_id] = job.job_id

        logger.info(
            "job_enqueued",
            document_id=document_id,
            job_id=job.job_id,
            priority=priority.value,
        )
        return job.job_id

    async def status(self) -> QueueStatus:
        return await self._backend.counts()

    def get_mode(self) -> str:
        return "async"

    async def _handle_job(self, job: ProcessDocumentJob) -> None:
        await self._processor.process(job.document_id)

    async def _on_settled(self, job: ProcessDocumentJob) -> None:
        async with self._lock:
            if self._in_flight.get(job.document_id) == job.job_id:
                del self._in_flight[job.document_id]


class InlineDispatcher(IJobDispatcher):
    """Processes the document before :meth:`dispatch` returns.

    There are no retries.  A failure is logged and counted; the document
    row already carries the ``failed`` status and message, so the caller
    gets the job id back either way.
    """

    def __init__(self, processor: DocumentProcessor) -> None:
        self._processor = processor
        self._active = 0
        self._completed = 0
        self._failed = 0

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def dispatch(self, document_id: str, priority: JobPriority = JobPriority.NORMAL) -> str:
        job_id = str(uuid.uuid4())
        log = logger.bind(document_id=document_id, job_id=job_id)
        log.info("inline_processing_started", priority=priority.value)

        self._active += 1
        try:
            await self._processor.process(document_id)
        except Exception as exc:
            self._failed += 1
            log.error("inline_processing_failed", error=str(exc), error_type=type(exc).__name__)
        else:
            self._completed += 1
        finally:
            self._active -= 1
        return job_id

    async def status(self) -> QueueStatus:
        return QueueStatus(
            waiting=0,
            active=self._active,
            completed=self._completed,
            failed=self._failed,
        )

    def get_mode(self) -> str:
        return "inline"
