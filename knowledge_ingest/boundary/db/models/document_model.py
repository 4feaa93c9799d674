"""
Knowledge document ORM model.

Registry of ingested documents: content fingerprint, origin, lifecycle
status and the ids of the chunks stored in the vector index.

Dependencies: sqlalchemy, knowledge_ingest.boundary.db.base
System role: Document persistence for dedup, replacement and orphan tracking
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_ingest.boundary.db.base import Base, TimestampMixin, UUIDMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")

SOURCE_URL_CONSTRAINT = "uq_knowledge_documents_source_url"
CONTENT_HASH_CONSTRAINT = "uq_knowledge_documents_content_hash"


class DocumentStatus(str, enum.Enum):
    """
    Document lifecycle states.

    INDEXED: Chunks stored in the vector index, record is authoritative
    ORPHANED: Source vanished upstream but vector cleanup did not complete
    FAILED: Chunking or indexing could not complete
    """

    INDEXED = "indexed"
    ORPHANED = "orphaned"
    FAILED = "failed"


class SourceType(str, enum.Enum):
    """Where a document came from."""

    SCRAPER = "scraper"
    API = "api"
    MANUAL_UPLOAD = "manual_upload"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class DocumentModel(Base, UUIDMixin, TimestampMixin):
    """
    Knowledge document tracked by the ingestion pipeline.

    A row exists only when its chunks are present in the vector index.
    Rows are replaced wholesale when new content arrives for the same
    source_url and hard-deleted when reconciliation retires them.

    Attributes:
        id: UUID primary key, also the prefix of every chunk id
        title: Supplied or generated title
        content_hash: SHA-256 of the normalized body
        source_type: scraper, api or manual_upload
        source_url: Optional origin URL, unique when present
        status: indexed, orphaned or failed
        chunk_refs: Ordered chunk ids stored in the vector index
        chunks_count: Denormalized len(chunk_refs)
        total_chars: Length of the normalized body
        error_message: Failure details, if any
        doc_metadata: Free-form metadata (column "metadata")
        indexed_at: When the chunks were written

    Constraints:
        source_url: UNIQUE (NULLs allowed)
        content_hash: UNIQUE
    """

    __tablename__ = "knowledge_documents"
    __table_args__ = (
        UniqueConstraint("source_url", name=SOURCE_URL_CONSTRAINT),
        UniqueConstraint("content_hash", name=CONTENT_HASH_CONSTRAINT),
        Index("ix_knowledge_documents_source_type", "source_type"),
        Index("ix_knowledge_documents_status", "status"),
        Index("ix_knowledge_documents_created_at", "created_at"),
    )

    title: Mapped[str] = mapped_column(Text, nullable=False)

    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    source_type: Mapped[SourceType] = mapped_column(
        Enum(SourceType, native_enum=False, values_callable=_enum_values, length=32),
        nullable=False,
        default=SourceType.MANUAL_UPLOAD,
    )

    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False, values_callable=_enum_values, length=32),
        nullable=False,
        default=DocumentStatus.INDEXED,
    )

    chunk_refs: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    chunks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_chars: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    doc_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    indexed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
