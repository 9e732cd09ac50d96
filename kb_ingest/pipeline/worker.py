"""Bounded pool of asyncio workers draining a job queue backend.

Each worker loops: reserve the best ready job, run the handler, then report
the outcome to the backend.  A failed job is either rescheduled with the
retry policy's backoff or counted as failed.  ``stop()`` lets in-flight jobs
finish; a job is never cancelled halfway through.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from kb_ingest.interfaces.job_queue_backend import IJobQueueBackend
from kb_ingest.models.jobs import ProcessDocumentJob
from kb_ingest.pipeline.retry import RetryPolicy

logger = structlog.get_logger(logger_name=__name__)

JobHandler = Callable[[ProcessDocumentJob], Awaitable[object]]
SettledCallback = Callable[[ProcessDocumentJob], Awaitable[None]]


class WorkerPool:
    """Runs ``concurrency`` worker tasks against one queue backend.

    Parameters
    ----------
    backend:
        Queue to reserve jobs from.
    handler:
        Coroutine processing one job; any exception counts as a failed attempt.
    retry_policy:
        Decides whether and when a failed job runs again.
    concurrency:
        Number of worker tasks (default 2).
    poll_timeout:
        Seconds a worker blocks on an empty queue before re-checking for stop.
    on_settled:
        Awaited once a job reaches a final outcome (completed or failed for
        good); not called for attempts that are rescheduled.  Also awaited
        when the backend fails to record the outcome, since the job is then
        no longer tracked by any worker.
    """

    def __init__(
        self,
        backend: IJobQueueBackend,
        handler: JobHandler,
        retry_policy: RetryPolicy | None = None,
        concurrency: int = 2,
        poll_timeout: float = 1.0,
        on_settled: SettledCallback | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self._backend = backend
        self._handler = handler
        self._retry_policy = retry_policy or RetryPolicy()
        self._concurrency = concurrency
        self._poll_timeout = poll_timeout
        self._on_settled = on_settled
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"kb-worker-{worker_id}")
            for worker_id in range(self._concurrency)
        ]
        logger.info(
            "worker_pool_started",
            concurrency=self._concurrency,
            backend=self._backend.get_provider_name(),
        )

    async def stop(self) -> None:
        if not self._tasks:
            return
        self._stopping.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("worker_pool_stopped")

    async def wait_idle(self, timeout: float | None = None, poll_interval: float = 0.05) -> None:
        """Wait until the backend reports no waiting and no active jobs.

        Raises
        ------
        asyncio.TimeoutError
            If the queue is still busy after *timeout* seconds.
        """

        async def _poll() -> None:
            while True:
                status = await self._backend.counts()
                if status.waiting == 0 and status.active == 0:
                    return
                await asyncio.sleep(poll_interval)

        await asyncio.wait_for(_poll(), timeout=timeout)

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    async def _worker_loop(self, worker_id: int) -> None:
        while not self._stopping.is_set():
            try:
                job = await self._backend.reserve(timeout=self._poll_timeout)
            except Exception as exc:
                logger.error("job_reserve_failed", worker_id=worker_id, error=str(exc))
                await asyncio.sleep(self._poll_timeout)
                continue
            if job is None:
                continue
            try:
                await self._run_job(worker_id, job)
            except Exception as exc:
                # Outcome could not be recorded; the worker stays alive.
                logger.error(
                    "job_bookkeeping_failed",
                    worker_id=worker_id,
                    job_id=job.job_id,
                    document_id=job.document_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    async def _run_job(self, worker_id: int, job: ProcessDocumentJob) -> None:
        with structlog.contextvars.bound_contextvars(
            job_id=job.job_id,
            document_id=job.document_id,
            worker_id=worker_id,
        ):
            attempt = job.attempts_made + 1
            logger.info("job_started", attempt=attempt, priority=job.priority.value)
            try:
                await self._handler(job)
            except Exception as exc:
                delay = self._retry_policy.next_delay(job, exc)
                if delay is None:
                    logger.error(
                        "job_failed",
                        attempt=attempt,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    try:
                        await self._backend.fail(job, str(exc), retry_delay=None)
                    finally:
                        await self._settle(job)
                    return
                try:
                    await self._backend.fail(job, str(exc), retry_delay=delay)
                except Exception:
                    # The retry was never scheduled, so the job is settled here.
                    await self._settle(job)
                    raise
                logger.warning(
                    "job_retry_scheduled",
                    attempt=attempt,
                    retry_in_s=delay,
                    error=str(exc),
                )
                return

            try:
                await self._backend.complete(job)
            finally:
                await self._settle(job)
            logger.info("job_completed", attempt=attempt)

    async def _settle(self, job: ProcessDocumentJob) -> None:
        if self._on_settled is None:
            return
        try:
            await self._on_settled(job)
        except Exception as exc:
            logger.error("job_settle_callback_failed", error=str(exc))
