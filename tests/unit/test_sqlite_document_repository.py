"""Unit tests for SQLiteDocumentRepository against a real database in tmp_path."""

from __future__ import annotations

import uuid

import pytest

from kb_ingest.models.document import Document, DocumentStatus
from kb_ingest.providers.repository.sqlite_document_repository import SQLiteDocumentRepository
from kb_ingest.utils.errors import DocumentNotFoundError


def _document(kb: str = "K1", file_name: str = "guide.txt") -> Document:
    document_id = str(uuid.uuid4())
    return Document(
        document_id=document_id,
        knowledge_base_id=kb,
        file_name=file_name,
        declared_type="txt",
        size_bytes=42,
        storage_locator=f"{kb}/{document_id}/{file_name}",
    )


class TestDocuments:
    @pytest.mark.asyncio
    async def test_create_and_get(self, sqlite_repository: SQLiteDocumentRepository) -> None:
        document = await sqlite_repository.create_document(_document())

        stored = await sqlite_repository.get_document(document.document_id)

        assert stored is not None
        assert stored.status is DocumentStatus.PENDING
        assert stored.file_name == "guide.txt"
        assert stored.size_bytes == 42
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(
        self, sqlite_repository: SQLiteDocumentRepository
    ) -> None:
        assert await sqlite_repository.get_document("missing") is None

    @pytest.mark.asyncio
    async def test_list_scoped_to_knowledge_base(
        self, sqlite_repository: SQLiteDocumentRepository
    ) -> None:
        await sqlite_repository.create_document(_document(kb="K1", file_name="a.txt"))
        await sqlite_repository.create_document(_document(kb="K1", file_name="b.txt"))
        await sqlite_repository.create_document(_document(kb="K2", file_name="c.txt"))

        documents = await sqlite_repository.list_documents("K1")

        assert sorted(d.file_name for d in documents) == ["a.txt", "b.txt"]

    @pytest.mark.asyncio
    async def test_get_file_names(self, sqlite_repository: SQLiteDocumentRepository) -> None:
        first = await sqlite_repository.create_document(_document(file_name="a.txt"))
        second = await sqlite_repository.create_document(_document(file_name="b.pdf"))

        names = await sqlite_repository.get_file_names(
            [first.document_id, second.document_id, "missing"]
        )

        assert names == {first.document_id: "a.txt", second.document_id: "b.pdf"}
        assert await sqlite_repository.get_file_names([]) == {}

    @pytest.mark.asyncio
    async def test_delete_document(self, sqlite_repository: SQLiteDocumentRepository) -> None:
        document = await sqlite_repository.create_document(_document())
        assert await sqlite_repository.delete_document(document.document_id) is True
        assert await sqlite_repository.delete_document(document.document_id) is False
        assert await sqlite_repository.get_document(document.document_id) is None


class TestStatusUpdates:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, sqlite_repository: SQLiteDocumentRepository) -> None:
        document = await sqlite_repository.create_document(_document())
        doc_id = document.document_id

        processing = await sqlite_repository.update_status(doc_id, DocumentStatus.PROCESSING)
        assert processing.status is DocumentStatus.PROCESSING

        failed = await sqlite_repository.update_status(
            doc_id, DocumentStatus.FAILED, error_message="[openai] rate limited"
        )
        assert failed.error_message == "[openai] rate limited"

        indexed = await sqlite_repository.update_status(
            doc_id, DocumentStatus.INDEXED, fragment_count=7
        )
        assert indexed.status is DocumentStatus.INDEXED
        assert indexed.fragment_count == 7
        assert indexed.error_message is None

    @pytest.mark.asyncio
    async def test_pending_reset_keeps_fragment_count(
        self, sqlite_repository: SQLiteDocumentRepository
    ) -> None:
        document = await sqlite_repository.create_document(_document())
        await sqlite_repository.update_status(
            document.document_id, DocumentStatus.INDEXED, fragment_count=3
        )

        pending = await sqlite_repository.update_status(
            document.document_id, DocumentStatus.PENDING
        )

        assert pending.status is DocumentStatus.PENDING
        assert pending.fragment_count == 3

    @pytest.mark.asyncio
    async def test_unknown_document_raises(
        self, sqlite_repository: SQLiteDocumentRepository
    ) -> None:
        with pytest.raises(DocumentNotFoundError):
            await sqlite_repository.update_status("missing", DocumentStatus.PROCESSING)


class TestKnowledgeBases:
    @pytest.mark.asyncio
    async def test_ensure_is_idempotent(self, sqlite_repository: SQLiteDocumentRepository) -> None:
        first = await sqlite_repository.ensure_knowledge_base("K1", name="Handbook")
        second = await sqlite_repository.ensure_knowledge_base("K1", name="Other")

        assert first.knowledge_base_id == "K1"
        assert second.name == "Handbook"
        assert second.created_at == first.created_at

    @pytest.mark.asyncio
    async def test_counts(self, sqlite_repository: SQLiteDocumentRepository) -> None:
        await sqlite_repository.ensure_knowledge_base("K1")
        await sqlite_repository.create_document(_document(kb="K1"))
        await sqlite_repository.create_document(_document(kb="K1"))
        await sqlite_repository.update_vector_count("K1", 17)

        knowledge_base = await sqlite_repository.get_knowledge_base("K1")

        assert knowledge_base is not None
        assert knowledge_base.vector_count == 17
        assert knowledge_base.document_count == 2

    @pytest.mark.asyncio
    async def test_delete_knowledge_base(
        self, sqlite_repository: SQLiteDocumentRepository
    ) -> None:
        await sqlite_repository.ensure_knowledge_base("K1")
        await sqlite_repository.create_document(_document(kb="K1"))
        await sqlite_repository.create_document(_document(kb="K1"))
        kept = await sqlite_repository.create_document(_document(kb="K2"))

        assert await sqlite_repository.delete_knowledge_base("K1") == 2
        assert await sqlite_repository.get_knowledge_base("K1") is None
        assert await sqlite_repository.list_documents("K1") == []
        assert await sqlite_repository.get_document(kept.document_id) is not None

    @pytest.mark.asyncio
    async def test_get_missing_knowledge_base(
        self, sqlite_repository: SQLiteDocumentRepository
    ) -> None:
        assert await sqlite_repository.get_knowledge_base("missing") is None
