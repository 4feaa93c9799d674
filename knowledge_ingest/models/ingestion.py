"""
Ingestion request and result schemas.

Structured outcomes returned by the ingestion orchestrator. Expected
failures are reported through these objects instead of exceptions.

Dependencies: pydantic
System role: Ingestion contracts
"""

import enum
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from knowledge_ingest.boundary.db.models.document_model import SourceType


class IngestStatus(str, enum.Enum):
    """Outcome of a single ingest call."""

    INDEXED = "indexed"
    DUPLICATE_REJECTED = "duplicate_rejected"
    FAILED = "failed"


class IngestRequest(BaseModel):
    """One document submitted for ingestion."""

    model_config = ConfigDict(populate_by_name=True)

    body: str = Field(description="Raw document text")
    title: str | None = Field(default=None, description="Title, generated from content when absent")
    source_url: str | None = Field(
        default=None,
        alias="sourceUrl",
        description="Origin URL, unique across stored documents",
    )
    source_type: SourceType = Field(
        default=SourceType.API,
        alias="sourceType",
        description="Document origin",
    )
    date: str | None = Field(default=None, description="Document date as supplied by the caller")

    @field_validator("body")
    @classmethod
    def _body_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("body must not be empty")
        return value


class IngestResult(BaseModel):
    """Result of ingesting one document."""

    success: bool
    status: IngestStatus
    document_id: uuid.UUID | None = None
    title: str | None = None
    source_url: str | None = None
    date: str | None = None
    chunks_count: int = 0
    total_length: int = 0
    generated_title: bool = False
    chunking_strategy: str | None = None
    replaced_document_id: uuid.UUID | None = None
    reason: str | None = None
    duplicate_hash: str | None = None
    error: str | None = None


class BatchIngestResult(BaseModel):
    """Tally of a batch ingestion."""

    success: bool = Field(description="True when no document failed")
    total: int
    successful: int = 0
    failed: int = 0
    duplicates: int = 0
    details: list[IngestResult] = Field(default_factory=list)
