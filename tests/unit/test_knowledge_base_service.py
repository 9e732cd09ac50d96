"""Unit tests for KnowledgeBaseService write paths."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kb_ingest.interfaces.job_dispatcher import IJobDispatcher
from kb_ingest.models.document import DocumentStatus
from kb_ingest.models.jobs import JobPriority
from kb_ingest.services.knowledge_base_service import KnowledgeBaseService, safe_file_name
from kb_ingest.utils.errors import DocumentNotFoundError, QueueError, StorageError
from tests.conftest import make_fragment


@pytest.fixture
def dispatcher() -> MagicMock:
    mock = MagicMock(spec=IJobDispatcher)
    mock.dispatch = AsyncMock(return_value="job-1")
    return mock


@pytest.fixture
def service(sqlite_repository, blob_storage, chroma_store, dispatcher) -> KnowledgeBaseService:
    return KnowledgeBaseService(sqlite_repository, blob_storage, chroma_store, dispatcher)


class TestSafeFileName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("handbook.pdf", "handbook.pdf"),
            ("Employee Handbook (v2).pdf", "Employee_Handbook_v2_.pdf"),
            ("../../etc/passwd", "passwd"),
            ("...", "upload"),
            ("", "upload"),
        ],
    )
    def test_sanitises(self, raw: str, expected: str) -> None:
        assert safe_file_name(raw) == expected


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_stores_and_dispatches(
        self, service, sqlite_repository, blob_storage, dispatcher
    ) -> None:
        document = await service.upload_document("K1", "Guide.PDF", b"%PDF-1.4 data")

        assert document.status is DocumentStatus.PENDING
        assert document.declared_type == "pdf"
        assert document.size_bytes == len(b"%PDF-1.4 data")
        assert document.storage_locator == f"K1/{document.document_id}/Guide.PDF"
        assert await blob_storage.download(document.storage_locator) == b"%PDF-1.4 data"
        assert await sqlite_repository.get_knowledge_base("K1") is not None
        dispatcher.dispatch.assert_awaited_once_with(document.document_id, JobPriority.NORMAL)

    @pytest.mark.asyncio
    async def test_declared_type_overrides_extension(self, service) -> None:
        document = await service.upload_document("K1", "notes", b"text", declared_type="text/plain")
        assert document.declared_type == "text/plain"

    @pytest.mark.asyncio
    async def test_dispatch_failure_leaves_document_pending(
        self, service, sqlite_repository, dispatcher
    ) -> None:
        dispatcher.dispatch.side_effect = QueueError(message="down", provider_name="redis")

        document = await service.upload_document("K1", "a.txt", b"hello")

        stored = await sqlite_repository.get_document(document.document_id)
        assert stored.status is DocumentStatus.PENDING


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_resets_failed_document(self, service, sqlite_repository, dispatcher) -> None:
        document = await service.upload_document("K1", "a.txt", b"hello")
        await sqlite_repository.update_status(
            document.document_id, DocumentStatus.FAILED, error_message="boom"
        )

        job_id = await service.enqueue_document(document.document_id, JobPriority.HIGH)

        stored = await sqlite_repository.get_document(document.document_id)
        assert job_id == "job-1"
        assert stored.status is DocumentStatus.PENDING
        assert stored.error_message is None
        dispatcher.dispatch.assert_awaited_with(document.document_id, JobPriority.HIGH)

    @pytest.mark.asyncio
    async def test_missing_document(self, service) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.enqueue_document("missing")

    @pytest.mark.asyncio
    async def test_reprocess_knowledge_base_uses_low_priority(self, service, dispatcher) -> None:
        await service.upload_document("K1", "a.txt", b"a")
        await service.upload_document("K1", "b.txt", b"b")
        await service.upload_document("K2", "c.txt", b"c")
        dispatcher.dispatch.reset_mock()

        job_ids = await service.reprocess_knowledge_base("K1")

        assert len(job_ids) == 2
        priorities = [call.args[1] for call in dispatcher.dispatch.await_args_list]
        assert priorities == [JobPriority.LOW, JobPriority.LOW]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_document_removes_everything(
        self, service, sqlite_repository, blob_storage, chroma_store
    ) -> None:
        document = await service.upload_document("K1", "a.txt", b"hello")
        other = await service.upload_document("K1", "b.txt", b"world")
        await chroma_store.insert_fragments(
            [make_fragment(document.document_id, "K1", i) for i in range(3)]
            + [make_fragment(other.document_id, "K1", 0)]
        )

        removed = await service.delete_document(document.document_id)

        assert removed == 3
        assert await sqlite_repository.get_document(document.document_id) is None
        assert await blob_storage.exists(document.storage_locator) is False
        assert await chroma_store.count_by_document(document.document_id) == 0
        knowledge_base = await sqlite_repository.get_knowledge_base("K1")
        assert knowledge_base.vector_count == 1

    @pytest.mark.asyncio
    async def test_delete_missing_document(self, service) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document("missing")

    @pytest.mark.asyncio
    async def test_blob_failure_does_not_block_delete(
        self, service, sqlite_repository, blob_storage
    ) -> None:
        document = await service.upload_document("K1", "a.txt", b"hello")

        with patch.object(blob_storage, "delete", AsyncMock(side_effect=StorageError("disk"))):
            await service.delete_document(document.document_id)

        assert await sqlite_repository.get_document(document.document_id) is None

    @pytest.mark.asyncio
    async def test_vector_failure_keeps_row(
        self, service, sqlite_repository, chroma_store
    ) -> None:
        document = await service.upload_document("K1", "a.txt", b"hello")

        with patch.object(
            chroma_store, "delete_by_document", AsyncMock(side_effect=StorageError("vector down"))
        ):
            with pytest.raises(StorageError):
                await service.delete_document(document.document_id)

        assert await sqlite_repository.get_document(document.document_id) is not None

    @pytest.mark.asyncio
    async def test_delete_knowledge_base(
        self, service, sqlite_repository, blob_storage, chroma_store
    ) -> None:
        first = await service.upload_document("K1", "a.txt", b"a")
        await service.upload_document("K1", "b.txt", b"b")
        kept = await service.upload_document("K2", "c.txt", b"c")
        await chroma_store.insert_fragments(
            [make_fragment(first.document_id, "K1", 0), make_fragment(kept.document_id, "K2", 0)]
        )

        assert await service.delete_knowledge_base("K1") == 2

        assert await service.list_documents("K1") == []
        assert await blob_storage.exists(first.storage_locator) is False
        assert await chroma_store.count_by_knowledge_base("K1") == 0
        assert await chroma_store.count_by_knowledge_base("K2") == 1
        assert await service.get_document(kept.document_id) is not None
