"""
Orphan reconciliation schemas.

Dependencies: pydantic
System role: Orphan reconciler contracts
"""

import uuid

from pydantic import BaseModel, Field


class OrphanDetail(BaseModel):
    """Preview entry for one orphaned document."""

    document_id: uuid.UUID
    title: str
    source_url: str | None = None
    chunks_count: int = 0


class OrphanResult(BaseModel):
    """Outcome of a reconciliation run."""

    found: int = 0
    deleted: int = 0
    chunks_deleted: int = 0
    dry_run: bool = False
    preview: bool = Field(default=False, description="True when nothing was mutated")
    details: list[OrphanDetail] = Field(default_factory=list)
