"""
Knowledge document CRUD operations.

Document repository over the knowledge_documents table: lookups used
for dedup and URL replacement, orphan queries, bulk status changes and
reporting. All methods run inside the caller's session so several of
them can be composed in a single transaction.

Dependencies: sqlalchemy, knowledge_ingest.boundary.db.models
System role: Document persistence operations
"""

from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_ingest.boundary.db.CRUD.base_crud import BaseCRUD
from knowledge_ingest.boundary.db.base import utcnow
from knowledge_ingest.boundary.db.models.document_model import (
    DocumentModel,
    DocumentStatus,
    SourceType,
)
from knowledge_ingest.models.statistics import RepositoryStatistics

MAX_DOCUMENT_LIMIT = 10000
DEFAULT_DOCUMENT_LIMIT = 100
LARGE_URL_ARRAY_THRESHOLD = 500
FETCH_BATCH_SIZE = 1000


def _clamp_limit(limit: int) -> int:
    return min(max(1, limit), MAX_DOCUMENT_LIMIT)


def violated_constraint(error: IntegrityError) -> str | None:
    """
    Identify which unique column an IntegrityError refers to.

    PostgreSQL reports the constraint name, SQLite the table.column pair;
    both mention the column name.

    Args:
        error: IntegrityError raised by flush or commit

    Returns:
        "source_url", "content_hash" or None for any other violation
    """
    message = str(error.orig) if error.orig is not None else str(error)
    for column in ("source_url", "content_hash"):
        if column in message:
            return column
    return None


class DocumentCRUD(BaseCRUD[DocumentModel]):
    """
    CRUD operations for DocumentModel.

    Extends BaseCRUD with hash/URL lookups, orphan detection queries
    and lifecycle status updates.
    """

    def __init__(self) -> None:
        """Initialize DocumentCRUD with DocumentModel."""
        super().__init__(DocumentModel)

    async def get_by_hash(
        self,
        session: AsyncSession,
        content_hash: str,
    ) -> DocumentModel | None:
        """
        Find the document holding a content fingerprint.

        Args:
            session: Async database session
            content_hash: SHA-256 hex digest of normalized content

        Returns:
            DocumentModel if present, None otherwise
        """
        stmt = select(DocumentModel).where(DocumentModel.content_hash == content_hash)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_source_url(
        self,
        session: AsyncSession,
        source_url: str,
    ) -> DocumentModel | None:
        """
        Find the document stored under a source URL.

        Args:
            session: Async database session
            source_url: Origin URL

        Returns:
            DocumentModel if present, None otherwise
        """
        stmt = select(DocumentModel).where(DocumentModel.source_url == source_url)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_document(
        self,
        session: AsyncSession,
        *,
        title: str,
        content_hash: str,
        source_type: SourceType = SourceType.MANUAL_UPLOAD,
        source_url: str | None = None,
        chunk_refs: list[str] | None = None,
        total_chars: int = 0,
        metadata: dict[str, Any] | None = None,
        status: DocumentStatus = DocumentStatus.INDEXED,
        id: UUID | None = None,
        indexed_at: datetime | None = None,
    ) -> DocumentModel:
        """
        Insert a document record.

        Args:
            session: Async database session
            title: Document title
            content_hash: Fingerprint of the normalized body
            source_type: Document origin
            source_url: Optional origin URL (unique)
            chunk_refs: Ids of the chunks stored in the vector index
            total_chars: Length of the normalized body
            metadata: Free-form metadata
            status: Initial lifecycle status
            id: Pre-generated id (chunk ids are derived from it)
            indexed_at: Indexing time (now if None)

        Returns:
            Created DocumentModel

        Raises:
            IntegrityError: source_url or content_hash already taken
        """
        chunk_refs = list(chunk_refs or [])
        fields: dict[str, Any] = {
            "title": title,
            "content_hash": content_hash,
            "source_type": source_type,
            "source_url": source_url,
            "status": status,
            "chunk_refs": chunk_refs,
            "chunks_count": len(chunk_refs),
            "total_chars": total_chars,
            "doc_metadata": metadata,
            "indexed_at": indexed_at or utcnow(),
        }
        if id is not None:
            fields["id"] = id
        return await self.create(session, **fields)

    async def delete_document(self, session: AsyncSession, id: UUID) -> bool:
        """
        Delete a document record by id.

        Args:
            session: Async database session
            id: Document UUID

        Returns:
            True if a row was deleted
        """
        return await self.delete_by_id(session, id)

    async def get_by_source_type(
        self,
        session: AsyncSession,
        source_type: SourceType,
        limit: int = DEFAULT_DOCUMENT_LIMIT,
        offset: int = 0,
    ) -> Sequence[DocumentModel]:
        """
        Retrieve documents of one origin, newest first.

        Args:
            session: Async database session
            source_type: Document origin
            limit: Maximum rows (clamped to 1..10000)
            offset: Rows to skip

        Returns:
            Sequence of DocumentModels
        """
        stmt = (
            select(DocumentModel)
            .where(DocumentModel.source_type == source_type)
            .order_by(DocumentModel.created_at.desc(), DocumentModel.id)
            .offset(offset)
            .limit(_clamp_limit(limit))
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_by_status(
        self,
        session: AsyncSession,
        status: DocumentStatus,
        limit: int | None = None,
    ) -> Sequence[DocumentModel]:
        """
        Retrieve documents by lifecycle status, newest first.

        Args:
            session: Async database session
            status: Status to filter by
            limit: Maximum number of documents to return

        Returns:
            Sequence of DocumentModels with matching status
        """
        stmt = (
            select(DocumentModel)
            .where(DocumentModel.status == status)
            .order_by(DocumentModel.created_at.desc(), DocumentModel.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_orphaned_documents(self, session: AsyncSession) -> Sequence[DocumentModel]:
        """Documents left in ORPHANED status, oldest update first."""
        stmt = (
            select(DocumentModel)
            .where(DocumentModel.status == DocumentStatus.ORPHANED)
            .order_by(DocumentModel.updated_at.asc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count_by_source_type(self, session: AsyncSession, source_type: SourceType) -> int:
        """Count documents of one origin."""
        stmt = (
            select(func.count())
            .select_from(DocumentModel)
            .where(DocumentModel.source_type == source_type)
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def find_documents_not_in_urls(
        self,
        session: AsyncSession,
        current_urls: Sequence[str],
        source_type: SourceType = SourceType.SCRAPER,
        limit: int = 1000,
        offset: int = 0,
        large_url_threshold: int = LARGE_URL_ARRAY_THRESHOLD,
    ) -> list[DocumentModel]:
        """
        Find documents of a source type whose URL is absent from current_urls.

        Documents without a source_url are never returned. Up to
        large_url_threshold URLs are pushed into a NOT IN clause; larger
        lists are matched in memory against rows fetched in batches so the
        statement size stays bounded.

        Args:
            session: Async database session
            current_urls: URLs currently present upstream
            source_type: Origin to reconcile
            limit: Maximum rows (clamped to 1..10000)
            offset: Rows to skip
            large_url_threshold: Switch-over point to in-memory filtering

        Returns:
            List of DocumentModels, newest first
        """
        safe_limit = _clamp_limit(limit)
        base = (
            select(DocumentModel)
            .where(
                DocumentModel.source_type == source_type,
                DocumentModel.source_url.is_not(None),
            )
            .order_by(DocumentModel.created_at.desc(), DocumentModel.id)
        )

        if len(current_urls) <= large_url_threshold:
            stmt = base
            if current_urls:
                stmt = stmt.where(DocumentModel.source_url.not_in(list(current_urls)))
            result = await session.execute(stmt.offset(offset).limit(safe_limit))
            return list(result.scalars().all())

        url_set = set(current_urls)
        orphaned: list[DocumentModel] = []
        fetch_offset = 0
        while len(orphaned) < offset + safe_limit:
            result = await session.execute(base.offset(fetch_offset).limit(FETCH_BATCH_SIZE))
            batch = result.scalars().all()
            if not batch:
                break
            orphaned.extend(doc for doc in batch if doc.source_url not in url_set)
            fetch_offset += FETCH_BATCH_SIZE

        return orphaned[offset:offset + safe_limit]

    async def mark_as_orphaned(self, session: AsyncSession, ids: Sequence[UUID]) -> int:
        """
        Downgrade documents to ORPHANED status.

        Args:
            session: Async database session
            ids: Document UUIDs

        Returns:
            Number of rows updated
        """
        if not ids:
            return 0
        stmt = (
            update(DocumentModel)
            .where(DocumentModel.id.in_(list(ids)))
            .values(status=DocumentStatus.ORPHANED, updated_at=utcnow())
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def delete_orphaned(self, session: AsyncSession, ids: Sequence[UUID]) -> int:
        """
        Permanently delete documents retired by reconciliation.

        Args:
            session: Async database session
            ids: Document UUIDs

        Returns:
            Number of rows deleted
        """
        if not ids:
            return 0
        stmt = delete(DocumentModel).where(DocumentModel.id.in_(list(ids)))
        result = await session.execute(stmt)
        return result.rowcount

    async def get_statistics(self, session: AsyncSession) -> RepositoryStatistics:
        """
        Aggregate document counts for reporting.

        Args:
            session: Async database session

        Returns:
            RepositoryStatistics with totals per status and per source type
        """
        status_rows = await session.execute(
            select(DocumentModel.status, func.count()).group_by(DocumentModel.status)
        )
        by_status = {status.value: count for status, count in status_rows.all()}

        source_rows = await session.execute(
            select(DocumentModel.source_type, func.count()).group_by(DocumentModel.source_type)
        )
        by_source_type = {source.value: count for source, count in source_rows.all()}

        return RepositoryStatistics(
            total=sum(by_status.values()),
            indexed=by_status.get(DocumentStatus.INDEXED.value, 0),
            orphaned=by_status.get(DocumentStatus.ORPHANED.value, 0),
            failed=by_status.get(DocumentStatus.FAILED.value, 0),
            by_source_type=by_source_type,
        )


document_crud = DocumentCRUD()
