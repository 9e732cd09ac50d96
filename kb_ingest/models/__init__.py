"""kb-ingest domain models; re-exports all public model classes.

The models are organized across three submodules by domain concern:
    - document.py  - Documents, their lifecycle status, and knowledge bases
    - fragment.py  - Fragments, search results and chunking parameters
    - jobs.py      - Queue priorities, processing jobs and queue counters
"""

from __future__ import annotations

from kb_ingest.models.document import Document, DocumentStatus, KnowledgeBase
from kb_ingest.models.fragment import ChunkingConfig, Fragment, SearchResult
from kb_ingest.models.jobs import (
    JobPriority,
    ProcessDocumentJob,
    ProcessingResult,
    QueueStatus,
)

__all__ = [
    "ChunkingConfig",
    "Document",
    "DocumentStatus",
    "Fragment",
    "JobPriority",
    "KnowledgeBase",
    "ProcessDocumentJob",
    "ProcessingResult",
    "QueueStatus",
    "SearchResult",
]
