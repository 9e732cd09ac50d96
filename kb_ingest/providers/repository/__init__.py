"""Document metadata repository implementations."""

from kb_ingest.providers.repository.sqlite_document_repository import SQLiteDocumentRepository

__all__ = ["SQLiteDocumentRepository"]
