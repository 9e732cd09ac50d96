"""Abstract base class for document parsers.

A parser turns the raw bytes of an uploaded file into plain text.  It never
chunks or cleans beyond what the file format requires.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   FormatDocumentParser - PDF (PyMuPDF), DOCX (python-docx), UTF-8 text
# Located in: kb_ingest/providers/parser/
class IDocumentParser(ABC):
    """Contract for raw-bytes to text extraction."""

    @abstractmethod
    async def parse(self, data: bytes, declared_type: str, file_name: str = "") -> str:
        """Extract the text content of a document.

        Parameters
        ----------
        data:
            Raw file bytes as stored in blob storage.
        declared_type:
            Extension (``"pdf"``, ``".docx"``) or MIME type declared at upload.
        file_name:
            Original file name; used for logging and as an extension fallback.

        Returns
        -------
        str
            Extracted text, possibly empty.

        Raises
        ------
        kb_ingest.utils.errors.ParseError
            If the format is unsupported or the file is corrupt.
        """

    @abstractmethod
    def supported_types(self) -> list[str]:
        """Return the file types this parser understands."""
