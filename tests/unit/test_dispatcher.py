"""Unit tests for the async and inline dispatchers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from kb_ingest.models.jobs import JobPriority, QueueStatus
from kb_ingest.pipeline.dispatcher import AsyncDispatcher, InlineDispatcher
from kb_ingest.pipeline.retry import RetryPolicy
from kb_ingest.providers.queue.memory_queue_backend import MemoryQueueBackend
from kb_ingest.services.document_processor import DocumentProcessor
from kb_ingest.utils.errors import ParseError, QueueError


def _processor(**process_kwargs) -> MagicMock:
    processor = MagicMock(spec=DocumentProcessor)
    processor.process = AsyncMock(**process_kwargs)
    return processor


class TestAsyncDispatcher:
    @pytest.mark.asyncio
    async def test_dispatch_enqueues_with_priority(self) -> None:
        backend = MemoryQueueBackend()
        dispatcher = AsyncDispatcher(
            backend, _processor(), retry_policy=RetryPolicy(max_attempts=4), run_workers=False
        )

        job_id = await dispatcher.dispatch("D1", JobPriority.HIGH)

        job = await backend.reserve(timeout=0.0)
        assert job.job_id == job_id
        assert job.priority is JobPriority.HIGH
        assert job.max_attempts == 4
        assert dispatcher.get_mode() == "async"

    @pytest.mark.asyncio
    async def test_in_flight_document_is_coalesced(self) -> None:
        backend = MemoryQueueBackend()
        dispatcher = AsyncDispatcher(backend, _processor(), poll_timeout=0.05)

        first = await dispatcher.dispatch("D1")
        second = await dispatcher.dispatch("D1")
        other = await dispatcher.dispatch("D2")

        assert first == second
        assert other != first
        assert (await dispatcher.status()).waiting == 2

    @pytest.mark.asyncio
    async def test_settled_job_releases_document(self) -> None:
        backend = MemoryQueueBackend()
        processor = _processor()
        dispatcher = AsyncDispatcher(backend, processor, poll_timeout=0.05)
        await dispatcher.start()
        try:
            first = await dispatcher.dispatch("D1")
            await dispatcher.pool.wait_idle(timeout=2.0)
            second = await dispatcher.dispatch("D1")
            await dispatcher.pool.wait_idle(timeout=2.0)
        finally:
            await dispatcher.stop()

        assert first != second
        assert processor.process.await_count == 2
        assert await dispatcher.status() == QueueStatus(completed=2)

    @pytest.mark.asyncio
    async def test_no_dedupe_without_local_workers(self) -> None:
        dispatcher = AsyncDispatcher(MemoryQueueBackend(), _processor(), run_workers=False)

        first = await dispatcher.dispatch("D1")
        second = await dispatcher.dispatch("D1")

        assert first != second

    @pytest.mark.asyncio
    async def test_start_without_workers_is_noop(self) -> None:
        dispatcher = AsyncDispatcher(MemoryQueueBackend(), _processor(), run_workers=False)
        await dispatcher.start()
        assert not dispatcher.pool.running
        await dispatcher.stop()


class TestInlineDispatcher:
    @pytest.mark.asyncio
    async def test_success_counts_completed(self) -> None:
        processor = _processor()
        dispatcher = InlineDispatcher(processor)

        job_id = await dispatcher.dispatch("D1")

        assert job_id
        processor.process.assert_awaited_once_with("D1")
        assert await dispatcher.status() == QueueStatus(completed=1)
        assert dispatcher.get_mode() == "inline"

    @pytest.mark.asyncio
    async def test_failure_is_counted_not_raised(self) -> None:
        dispatcher = InlineDispatcher(_processor(side_effect=ParseError()))

        await dispatcher.dispatch("D1")

        assert await dispatcher.status() == QueueStatus(failed=1)

    @pytest.mark.asyncio
    async def test_no_retry_for_transient_error(self) -> None:
        processor = _processor(side_effect=ConnectionError("down"))
        dispatcher = InlineDispatcher(processor)

        await dispatcher.dispatch("D1")

        assert processor.process.await_count == 1


async def _until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


class _CompleteFailsOnce(MemoryQueueBackend):
    def __init__(self) -> None:
        super().__init__()
        self.raised = False

    async def complete(self, job) -> None:
        if not self.raised:
            self.raised = True
            raise QueueError(message="connection reset", provider_name="redis")
        await super().complete(job)


class TestBookkeepingFailure:
    @pytest.mark.asyncio
    async def test_in_flight_entry_released_when_complete_fails(self) -> None:
        backend = _CompleteFailsOnce()
        processor = _processor()
        dispatcher = AsyncDispatcher(backend, processor, concurrency=1, poll_timeout=0.05)
        await dispatcher.start()
        try:
            first = await dispatcher.dispatch("D1")
            await _until(lambda: backend.raised)
            # Let the settle callback release D1.
            await asyncio.sleep(0.05)

            second = await dispatcher.dispatch("D1")
            await _until(lambda: processor.process.await_count == 2)
        finally:
            await dispatcher.stop()

        assert second != first
        assert processor.process.await_count == 2
