"""SQLite-backed document and knowledge-base repository.

Persists document rows (status, fragment count, last error) and knowledge
base counters to a local SQLite database at ``data/kb_ingest.db``.  Uses
``aiosqlite`` for async I/O; every call opens its own short-lived
connection, so concurrent workers never share a cursor.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from kb_ingest.interfaces.document_repository import IDocumentRepository
from kb_ingest.models.document import Document, DocumentStatus, KnowledgeBase
from kb_ingest.utils.errors import DocumentNotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/kb_ingest.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS knowledge_bases (
    knowledge_base_id TEXT PRIMARY KEY,
    name              TEXT    NOT NULL DEFAULT '',
    vector_count      INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS documents (
    document_id       TEXT PRIMARY KEY,
    knowledge_base_id TEXT    NOT NULL,
    file_name         TEXT    NOT NULL,
    declared_type     TEXT    NOT NULL,
    size_bytes        INTEGER NOT NULL DEFAULT 0,
    storage_locator   TEXT    NOT NULL,
    status            TEXT    NOT NULL,
    fragment_count    INTEGER NOT NULL DEFAULT 0,
    error_message     TEXT,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_kb ON documents(knowledge_base_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
]

_DOCUMENT_COLUMNS = (
    "document_id, knowledge_base_id, file_name, declared_type, size_bytes, "
    "storage_locator, status, fragment_count, error_message, created_at, updated_at"
)

_INSERT_DOCUMENT_SQL = f"""\
INSERT INTO documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_STATUS_SQL = """\
UPDATE documents
SET status         = ?,
    error_message  = ?,
    fragment_count = COALESCE(?, fragment_count),
    updated_at     = ?
WHERE document_id = ?;
"""

_SELECT_KB_SQL = """\
SELECT kb.knowledge_base_id, kb.name, kb.vector_count, kb.created_at, kb.updated_at,
       (SELECT COUNT(*) FROM documents d
        WHERE d.knowledge_base_id = kb.knowledge_base_id) AS document_count
FROM knowledge_bases kb
WHERE kb.knowledge_base_id = ?;
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteDocumentRepository(IDocumentRepository):
    """SQLite-backed document metadata persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                for table_sql in _CREATE_TABLES_SQL:
                    await db.execute(table_sql)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Metadata database setup failed: {exc}", provider_name="sqlite"
            ) from exc
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        await self._write(
            _INSERT_DOCUMENT_SQL,
            (
                document.document_id,
                document.knowledge_base_id,
                document.file_name,
                document.declared_type,
                document.size_bytes,
                document.storage_locator,
                document.status.value,
                document.fragment_count,
                document.error_message,
                document.created_at.isoformat(),
                document.updated_at.isoformat(),
            ),
        )
        logger.info(
            "document_created",
            document_id=document.document_id,
            knowledge_base_id=document.knowledge_base_id,
            file_name=document.file_name,
        )
        return document

    async def get_document(self, document_id: str) -> Document | None:
        rows = await self._fetch(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?",
            (document_id,),
        )
        return self._row_to_document(rows[0]) if rows else None

    async def list_documents(self, knowledge_base_id: str) -> list[Document]:
        rows = await self._fetch(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
            "WHERE knowledge_base_id = ? ORDER BY created_at, document_id",
            (knowledge_base_id,),
        )
        return [self._row_to_document(r) for r in rows]

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        fragment_count: int | None = None,
        error_message: str | None = None,
    ) -> Document:
        updated = await self._write(
            _UPDATE_STATUS_SQL,
            (status.value, error_message, fragment_count, _now(), document_id),
        )
        if updated == 0:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

        document = await self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")
        logger.debug("document_status_updated", document_id=document_id, status=status.value)
        return document

    async def delete_document(self, document_id: str) -> bool:
        deleted = await self._write("DELETE FROM documents WHERE document_id = ?", (document_id,))
        return deleted > 0

    async def get_file_names(self, document_ids: list[str]) -> dict[str, str]:
        if not document_ids:
            return {}
        placeholders = ", ".join("?" for _ in document_ids)
        rows = await self._fetch(
            f"SELECT document_id, file_name FROM documents WHERE document_id IN ({placeholders})",
            tuple(document_ids),
        )
        return {r["document_id"]: r["file_name"] for r in rows}

    # ------------------------------------------------------------------
    # Knowledge bases
    # ------------------------------------------------------------------

    async def ensure_knowledge_base(self, knowledge_base_id: str, name: str = "") -> KnowledgeBase:
        now = _now()
        await self._write(
            "INSERT INTO knowledge_bases (knowledge_base_id, name, vector_count, created_at, "
            "updated_at) VALUES (?, ?, 0, ?, ?) ON CONFLICT(knowledge_base_id) DO NOTHING",
            (knowledge_base_id, name, now, now),
        )
        knowledge_base = await self.get_knowledge_base(knowledge_base_id)
        if knowledge_base is None:
            raise StorageError(
                message=f"Knowledge base {knowledge_base_id} could not be created",
                provider_name="sqlite",
            )
        return knowledge_base

    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase | None:
        rows = await self._fetch(_SELECT_KB_SQL, (knowledge_base_id,))
        if not rows:
            return None
        return KnowledgeBase(**dict(rows[0]))

    async def update_vector_count(self, knowledge_base_id: str, vector_count: int) -> None:
        await self._write(
            "UPDATE knowledge_bases SET vector_count = ?, updated_at = ? "
            "WHERE knowledge_base_id = ?",
            (vector_count, _now(), knowledge_base_id),
        )

    async def delete_knowledge_base(self, knowledge_base_id: str) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "DELETE FROM documents WHERE knowledge_base_id = ?", (knowledge_base_id,)
                )
                removed = cursor.rowcount
                await db.execute(
                    "DELETE FROM knowledge_bases WHERE knowledge_base_id = ?",
                    (knowledge_base_id,),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Metadata database write failed: {exc}", provider_name="sqlite"
            ) from exc
        logger.info(
            "knowledge_base_rows_deleted",
            knowledge_base_id=knowledge_base_id,
            documents=removed,
        )
        return max(removed, 0)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(self, sql: str, params: tuple[Any, ...]) -> list[aiosqlite.Row]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(sql, params)
                return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Metadata database read failed: {exc}", provider_name="sqlite"
            ) from exc

    async def _write(self, sql: str, params: tuple[Any, ...]) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(sql, params)
                await db.commit()
                return cursor.rowcount
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Metadata database write failed: {exc}", provider_name="sqlite"
            ) from exc

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        data = dict(row)
        data["status"] = DocumentStatus(data["status"])
        return Document(**data)
