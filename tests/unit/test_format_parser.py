"""Unit tests for FormatDocumentParser dispatch and format readers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from kb_ingest.providers.parser.format_parser import FormatDocumentParser
from kb_ingest.utils.errors import ParseError
from kb_ingest.utils.file_types import accepted_types, normalize_declared_type


def _mock_pdf(pages: list[str]) -> MagicMock:
    doc = MagicMock()
    doc.__len__ = MagicMock(return_value=len(pages))
    page_mocks = []
    for text in pages:
        page = MagicMock()
        page.get_text.return_value = text
        page_mocks.append(page)
    doc.__getitem__ = MagicMock(side_effect=lambda i: page_mocks[i])
    return doc


class TestNormalizeDeclaredType:
    @pytest.mark.parametrize(
        ("declared", "file_name", "expected"),
        [
            ("pdf", "", "pdf"),
            ("application/pdf", "", "pdf"),
            (".DOCX", "", "docx"),
            ("doc", "", "doc"),
            ("text/plain", "", "text"),
            ("md", "", "text"),
            ("application/json", "", "text"),
            ("", "notes.MD", "text"),
            ("application/octet-stream", "report.pdf", "pdf"),
            ("xyz", "archive.zip", "unknown"),
        ],
    )
    def test_mapping(self, declared: str, file_name: str, expected: str) -> None:
        assert normalize_declared_type(declared, file_name) == expected

    def test_accepted_types_exclude_doc(self) -> None:
        types = accepted_types()
        assert "pdf" in types
        assert "docx" in types
        assert "doc" not in types
        assert "application/msword" not in types


class TestTextFormats:
    @pytest.mark.asyncio
    async def test_plain_text_decoded(self) -> None:
        parser = FormatDocumentParser()
        assert await parser.parse("héllo\nworld".encode(), "txt", "a.txt") == "héllo\nworld"

    @pytest.mark.asyncio
    async def test_json_decoded_verbatim(self) -> None:
        parser = FormatDocumentParser()
        assert await parser.parse(b'{"a": 1}', "application/json") == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_invalid_utf8_raises(self) -> None:
        parser = FormatDocumentParser()
        with pytest.raises(ParseError, match="UTF-8"):
            await parser.parse(b"\xff\xfe\xfa", "txt")

    @pytest.mark.asyncio
    async def test_unknown_type_falls_back_to_text(self) -> None:
        parser = FormatDocumentParser()
        assert await parser.parse(b"plain bytes", "xyz", "data.bin") == "plain bytes"

    @pytest.mark.asyncio
    async def test_doc_rejected(self) -> None:
        parser = FormatDocumentParser()
        with pytest.raises(ParseError, match="convert to DOCX"):
            await parser.parse(b"\xd0\xcf\x11\xe0", "doc", "old.doc")


class TestPdf:
    @pytest.mark.asyncio
    async def test_pages_joined_skipping_blank(self) -> None:
        doc = _mock_pdf(["Page one text", "   ", "Page three text"])
        with patch("kb_ingest.providers.parser.format_parser.fitz") as mock_fitz:
            mock_fitz.open.return_value = doc
            text = await FormatDocumentParser().parse(b"%PDF-1.4", "pdf", "a.pdf")

        assert text == "Page one text\nPage three text"
        mock_fitz.open.assert_called_once_with(stream=b"%PDF-1.4", filetype="pdf")
        doc.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_corrupt_pdf_raises(self) -> None:
        with patch("kb_ingest.providers.parser.format_parser.fitz") as mock_fitz:
            mock_fitz.open.side_effect = RuntimeError("cannot open broken document")
            with pytest.raises(ParseError, match="Could not open PDF"):
                await FormatDocumentParser().parse(b"garbage", "pdf")


class TestDocx:
    @pytest.mark.asyncio
    async def test_paragraphs_joined(self) -> None:
        document = MagicMock()
        document.paragraphs = [
            MagicMock(text="Heading"),
            MagicMock(text=""),
            MagicMock(text="Body paragraph"),
        ]
        with patch("kb_ingest.providers.parser.format_parser.docx") as mock_docx:
            mock_docx.Document.return_value = document
            text = await FormatDocumentParser().parse(b"PK\x03\x04", "docx", "a.docx")

        assert text == "Heading\n\nBody paragraph"

    @pytest.mark.asyncio
    async def test_corrupt_docx_raises(self) -> None:
        with patch("kb_ingest.providers.parser.format_parser.docx") as mock_docx:
            mock_docx.Document.side_effect = ValueError("file is not a zip file")
            with pytest.raises(ParseError, match="Could not open DOCX"):
                await FormatDocumentParser().parse(b"not a zip", "docx")
