"""Local-filesystem blob storage.

Stores each uploaded file under ``<root>/<locator>`` using ``aiofiles`` for
non-blocking I/O.  Locators are relative paths such as
``<knowledge_base_id>/<document_id>/<file_name>``; anything resolving
outside the root is rejected.
"""

from __future__ import annotations

import os
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from kb_ingest.interfaces.blob_storage import IBlobStorage
from kb_ingest.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStorage(IBlobStorage):
    """Blob storage rooted at a local directory."""

    def __init__(self, root_dir: str | Path = "data/blobs") -> None:
        self._root = Path(root_dir).resolve()

    # ------------------------------------------------------------------
    # IBlobStorage implementation
    # ------------------------------------------------------------------

    async def upload(self, locator: str, data: bytes) -> str:
        path = self._resolve(locator)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as buffer:
                await buffer.write(data)
        except OSError as exc:
            raise StorageError(
                message=f"Could not write blob {locator!r}: {exc}",
                provider_name="local_blob",
            ) from exc
        logger.debug("blob_uploaded", locator=locator, size_bytes=len(data))
        return locator

    async def download(self, locator: str) -> bytes:
        path = self._resolve(locator)
        try:
            async with aiofiles.open(path, "rb") as buffer:
                return await buffer.read()
        except FileNotFoundError as exc:
            raise StorageError(
                message=f"Blob {locator!r} does not exist",
                provider_name="local_blob",
            ) from exc
        except OSError as exc:
            raise StorageError(
                message=f"Could not read blob {locator!r}: {exc}",
                provider_name="local_blob",
            ) from exc

    async def delete(self, locator: str) -> bool:
        path = self._resolve(locator)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(
                message=f"Could not delete blob {locator!r}: {exc}",
                provider_name="local_blob",
            ) from exc
        logger.debug("blob_deleted", locator=locator)
        return True

    async def exists(self, locator: str) -> bool:
        return await aiofiles.os.path.isfile(self._resolve(locator))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, locator: str) -> Path:
        if not locator or os.path.isabs(locator):
            raise StorageError(
                message=f"Invalid blob locator {locator!r}", provider_name="local_blob"
            )
        path = (self._root / locator).resolve()
        if not path.is_relative_to(self._root):
            raise StorageError(
                message=f"Blob locator {locator!r} escapes the storage root",
                provider_name="local_blob",
            )
        return path
