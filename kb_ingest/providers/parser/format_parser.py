"""Format-dispatching document parser.

Reads PDF files with PyMuPDF (``fitz``) and DOCX files with python-docx;
plain text, Markdown and JSON are decoded as UTF-8.  Legacy ``.doc`` files
are rejected.  Unknown types fall back to UTF-8 decoding with a warning.

Both binary formats are parsed in a worker thread (``asyncio.to_thread``)
so a large upload does not stall the event loop.
"""

from __future__ import annotations

import asyncio
import io

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from kb_ingest.interfaces.document_parser import IDocumentParser
from kb_ingest.utils.errors import ParseError
from kb_ingest.utils.file_types import accepted_types, normalize_declared_type

logger = structlog.get_logger(logger_name=__name__)


class FormatDocumentParser(IDocumentParser):
    """Parser that dispatches on the declared file type."""

    async def parse(self, data: bytes, declared_type: str, file_name: str = "") -> str:
        fmt = normalize_declared_type(declared_type, file_name)

        if fmt == "pdf":
            text = await asyncio.to_thread(self._parse_pdf, data)
        elif fmt == "docx":
            text = await asyncio.to_thread(self._parse_docx, data)
        elif fmt == "doc":
            raise ParseError(
                message="DOC format not supported, please convert to DOCX",
                provider_name="parser",
            )
        elif fmt == "text":
            text = self._decode_utf8(data)
        else:
            logger.warning(
                "unknown_file_type_decoded_as_text",
                declared_type=declared_type,
                file_name=file_name,
            )
            text = self._decode_utf8(data)

        logger.debug(
            "document_parsed",
            file_name=file_name,
            format=fmt,
            size_bytes=len(data),
            text_length=len(text),
        )
        return text

    def supported_types(self) -> list[str]:
        return accepted_types()

    # ------------------------------------------------------------------
    # Format readers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_pdf(data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ParseError(message=f"Could not open PDF: {exc}", provider_name="pymupdf") from exc

        page_count = len(doc)
        pages: list[str] = []
        try:
            for page_num in range(page_count):
                text = doc[page_num].get_text("text")
                if text.strip():
                    pages.append(text)
        except Exception as exc:
            raise ParseError(
                message=f"Could not read PDF text: {exc}", provider_name="pymupdf"
            ) from exc
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", page_count=page_count)
        return "\n".join(pages)

    @staticmethod
    def _parse_docx(data: bytes) -> str:
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as exc:
            raise ParseError(
                message=f"Could not open DOCX: {exc}", provider_name="python-docx"
            ) from exc
        paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
        return "\n\n".join(paragraphs)

    @staticmethod
    def _decode_utf8(data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(
                message=f"File is not valid UTF-8 text: {exc}", provider_name="parser"
            ) from exc
