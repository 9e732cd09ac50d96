"""kb-ingest: document ingestion and semantic search for knowledge bases."""

__version__ = "0.1.0"
