"""
Vector index schemas.

Pydantic models returned by the vector index client.

Dependencies: pydantic
System role: Type definitions for vector operations
"""

from typing import Any

from pydantic import BaseModel, Field

from knowledge_ingest.models.statistics import VectorIndexStats


class VectorSearchResult(BaseModel):
    """Single ranked result from a similarity search."""

    id: str = Field(description="Chunk identifier")
    content: str = Field(description="Chunk text content")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Chunk metadata")
    distance: float = Field(description="Backend score for the match")


class DeleteResult(BaseModel):
    """Outcome of a chunk deletion."""

    deleted_count: int = Field(default=0, description="Chunks removed from the index")


__all__ = ["DeleteResult", "VectorIndexStats", "VectorSearchResult"]
