"""
Domain models and schemas.

Exports:
  - Chunk, make_chunk_id: Vector index unit
  - IngestStatus, IngestRequest, IngestResult, BatchIngestResult: Ingestion contracts
  - OrphanDetail, OrphanResult: Reconciliation contracts
  - RepositoryStatistics, VectorIndexStats, IngestionStatistics: Reporting
"""

from knowledge_ingest.models.chunk import Chunk, make_chunk_id
from knowledge_ingest.models.ingestion import (
    BatchIngestResult,
    IngestRequest,
    IngestResult,
    IngestStatus,
)
from knowledge_ingest.models.orphan import OrphanDetail, OrphanResult
from knowledge_ingest.models.statistics import (
    IngestionStatistics,
    RepositoryStatistics,
    VectorIndexStats,
)

__all__ = [
    "BatchIngestResult",
    "Chunk",
    "IngestRequest",
    "IngestResult",
    "IngestStatus",
    "IngestionStatistics",
    "OrphanDetail",
    "OrphanResult",
    "RepositoryStatistics",
    "VectorIndexStats",
    "make_chunk_id",
]
