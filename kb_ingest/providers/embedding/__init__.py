"""Embedding provider implementations.

Embeddings convert fragment text into numeric vectors that capture semantic
meaning; the vector store ranks fragments by cosine similarity between them.

    OpenAIEmbeddingProvider - text-embedding-ada-002 (1536 dims) or any
    OpenAI-compatible endpoint configured through OPENAI_BASE_URL.
"""

from kb_ingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
