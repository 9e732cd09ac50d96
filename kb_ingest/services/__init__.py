"""Domain services: chunking, embedding, processing, search and knowledge-base writes."""

from kb_ingest.services.chunker import TextChunker
from kb_ingest.services.document_processor import DocumentProcessor
from kb_ingest.services.embedding_client import EmbeddingClient
from kb_ingest.services.knowledge_base_service import KnowledgeBaseService
from kb_ingest.services.search_service import SearchService

__all__ = [
    "DocumentProcessor",
    "EmbeddingClient",
    "KnowledgeBaseService",
    "SearchService",
    "TextChunker",
]
