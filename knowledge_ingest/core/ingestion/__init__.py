"""
Ingestion core.

Exports:
  - normalize_content, compute_hash: Content fingerprints
  - TextChunker, ChunkSource, CHUNKING_STRATEGIES, split_text: Chunking
  - DocumentIngestService: Single and batch ingestion
  - OrphanReconciler: Retirement of documents gone upstream
"""

from knowledge_ingest.core.ingestion.chunker import (
    CHUNKING_STRATEGIES,
    ChunkingResult,
    ChunkingStrategy,
    ChunkSource,
    TextChunker,
    split_text,
)
from knowledge_ingest.core.ingestion.content_hasher import (
    compare_content,
    compare_hash,
    compute_hash,
    compute_normalized_hash,
    normalize_content,
)
from knowledge_ingest.core.ingestion.ingest_service import DocumentIngestService, generate_title
from knowledge_ingest.core.ingestion.orphan_reconciler import OrphanReconciler

__all__ = [
    "CHUNKING_STRATEGIES",
    "ChunkSource",
    "ChunkingResult",
    "ChunkingStrategy",
    "DocumentIngestService",
    "OrphanReconciler",
    "TextChunker",
    "compare_content",
    "compare_hash",
    "compute_hash",
    "compute_normalized_hash",
    "generate_title",
    "normalize_content",
    "split_text",
]
