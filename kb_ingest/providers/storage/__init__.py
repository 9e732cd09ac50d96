"""Blob storage implementations for raw uploaded files."""

from kb_ingest.providers.storage.local_blob_storage import LocalBlobStorage

__all__ = ["LocalBlobStorage"]
