"""
Reporting schemas.

Dependencies: pydantic
System role: Aggregated counts for the repository and the vector index
"""

from datetime import datetime

from pydantic import BaseModel, Field


class RepositoryStatistics(BaseModel):
    """Document counts held by the relational store."""

    total: int = 0
    indexed: int = 0
    orphaned: int = 0
    failed: int = 0
    by_source_type: dict[str, int] = Field(default_factory=dict)


class VectorIndexStats(BaseModel):
    """Vector index status as seen by the client."""

    connected: bool
    count: int | None = Field(default=None, description="Stored vectors, None when unknown")
    index_name: str | None = None


class IngestionStatistics(BaseModel):
    """Combined view over both stores."""

    database: RepositoryStatistics
    vector_index: VectorIndexStats
    timestamp: datetime
