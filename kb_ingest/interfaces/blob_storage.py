"""Abstract base class for raw document storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   LocalBlobStorage - files under a rooted directory (aiofiles)
# Located in: kb_ingest/providers/storage/
class IBlobStorage(ABC):
    """Contract for storing and retrieving uploaded file bytes by locator."""

    @abstractmethod
    async def upload(self, locator: str, data: bytes) -> str:
        """Store *data* under *locator*, overwriting any previous object.

        Returns the locator actually used.

        Raises
        ------
        kb_ingest.utils.errors.StorageError
            If the write fails or the locator is invalid.
        """

    @abstractmethod
    async def download(self, locator: str) -> bytes:
        """Return the bytes stored under *locator*.

        Raises
        ------
        kb_ingest.utils.errors.StorageError
            If no object exists or the read fails.
        """

    @abstractmethod
    async def delete(self, locator: str) -> bool:
        """Delete the object under *locator*.  Returns ``False`` if it did not exist."""

    @abstractmethod
    async def exists(self, locator: str) -> bool:
        """Return ``True`` if an object is stored under *locator*."""
