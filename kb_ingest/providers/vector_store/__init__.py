"""Vector store provider implementations.

Two implementations of IVectorStore:
    1. PgVectorStore       - PostgreSQL + pgvector.  Production backend;
       selected with VECTOR_BACKEND=pgvector and DATABASE_URL.
    2. ChromaDBVectorStore - local persistent ChromaDB collection at
       CHROMADB_PERSIST_DIR.  Default for development.
"""

from kb_ingest.providers.vector_store.chromadb_store import ChromaDBVectorStore
from kb_ingest.providers.vector_store.pgvector_store import PgVectorStore

__all__ = ["ChromaDBVectorStore", "PgVectorStore"]
