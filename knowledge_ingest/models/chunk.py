"""
Chunk domain model.

A bounded slice of a document's text, the unit stored in the vector index.

Dependencies: pydantic
System role: Chunk data structure shared by the chunker and the vector client
"""

from typing import Any

from pydantic import BaseModel, Field


def make_chunk_id(document_id: str, index: int) -> str:
    """Derive a chunk id from its parent document id and sequence number."""
    return f"{document_id}_chunk_{index}"


class Chunk(BaseModel):
    """Document chunk model."""

    id: str = Field(description="Chunk identifier (<document_id>_chunk_<index>)")
    content: str = Field(description="Chunk text content")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Flat chunk metadata")
