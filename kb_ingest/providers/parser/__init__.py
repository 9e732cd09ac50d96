"""Document parser implementations."""

from kb_ingest.providers.parser.format_parser import FormatDocumentParser

__all__ = ["FormatDocumentParser"]
