"""
Orphan reconciliation.

Compares the URLs currently published upstream with the scraped
documents on record and retires the ones whose URL disappeared. Vector
chunks are removed first; database rows only after that succeeded.
When vector deletion fails the rows are kept and downgraded to
ORPHANED so the cleanup can be retried.

Dependencies: sqlalchemy, knowledge_ingest.boundary
System role: Consistency between the upstream site, the repository and the vector index
"""

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_ingest.boundary.db.connection import transaction
from knowledge_ingest.boundary.db.CRUD.document_crud import DocumentCRUD, document_crud
from knowledge_ingest.boundary.db.models.document_model import DocumentModel, SourceType
from knowledge_ingest.boundary.vdb.vector_index_client import VectorIndexClient
from knowledge_ingest.configs.ingestion import IngestionSettings
from knowledge_ingest.core.exceptions import OrphanCleanupError, VectorIndexError
from knowledge_ingest.models.orphan import OrphanDetail, OrphanResult

logger = logging.getLogger(__name__)


class OrphanReconciler:
    """Retires scraped documents whose source URL is gone."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        vector_client: VectorIndexClient,
        settings: IngestionSettings | None = None,
        crud: DocumentCRUD = document_crud,
        source_type: SourceType = SourceType.SCRAPER,
    ) -> None:
        self.session_factory = session_factory
        self.vector_client = vector_client
        self.settings = settings or IngestionSettings()
        self.source_type = source_type
        self._crud = crud

    async def detect_orphans(
        self,
        current_urls: Sequence[str],
        dry_run: bool = False,
    ) -> OrphanResult:
        """
        Find and retire documents whose source_url is not in current_urls.

        Args:
            current_urls: URLs present upstream right now
            dry_run: Report what would be retired without touching either store

        Returns:
            OrphanResult

        Raises:
            OrphanCleanupError: Vector deletion failed; documents were marked ORPHANED
        """
        async with self.session_factory() as session:
            orphans = await self._crud.find_documents_not_in_urls(
                session,
                list(current_urls),
                source_type=self.source_type,
                limit=self.settings.orphan_query_limit,
                large_url_threshold=self.settings.orphan_large_url_threshold,
            )

        if not orphans:
            logger.info(f"{__name__}:detect_orphans - No orphaned documents")
            return OrphanResult(found=0, deleted=0, dry_run=dry_run, preview=dry_run)

        details = [self._detail(doc) for doc in orphans]

        if dry_run:
            logger.info(
                f"{__name__}:detect_orphans - Dry run found {len(orphans)} orphaned documents",
                extra={"current_url_count": len(current_urls)},
            )
            return OrphanResult(
                found=len(orphans),
                deleted=0,
                dry_run=True,
                preview=True,
                details=details,
            )

        document_ids = [doc.id for doc in orphans]
        chunk_ids = [chunk_id for doc in orphans for chunk_id in (doc.chunk_refs or [])]
        chunks_deleted = 0

        if chunk_ids and self.vector_client.is_connected:
            try:
                result = await self.vector_client.delete_chunks(chunk_ids)
                chunks_deleted = result.deleted_count
            except VectorIndexError as e:
                async with transaction(self.session_factory) as session:
                    marked = await self._crud.mark_as_orphaned(session, document_ids)
                logger.error(
                    f"{__name__}:detect_orphans - Vector cleanup failed, marked {marked} documents orphaned",
                    extra={"chunk_count": len(chunk_ids)},
                )
                raise OrphanCleanupError(
                    f"Failed to delete orphaned chunks from the vector index: {e}",
                    document_ids=[str(doc_id) for doc_id in document_ids],
                ) from e
        elif chunk_ids:
            logger.warning(
                f"{__name__}:detect_orphans - Vector index not connected, skipping chunk cleanup",
                extra={"chunk_count": len(chunk_ids)},
            )

        async with transaction(self.session_factory) as session:
            deleted = await self._crud.delete_orphaned(session, document_ids)

        logger.info(
            f"{__name__}:detect_orphans - Deleted {deleted} orphaned documents",
            extra={"chunks_deleted": chunks_deleted},
        )
        return OrphanResult(
            found=len(orphans),
            deleted=deleted,
            chunks_deleted=chunks_deleted,
            dry_run=False,
            details=details,
        )

    async def list_orphaned(self) -> list[OrphanDetail]:
        """Documents left in ORPHANED status by a failed cleanup."""
        async with self.session_factory() as session:
            documents = await self._crud.get_orphaned_documents(session)
        return [self._detail(doc) for doc in documents]

    @staticmethod
    def _detail(document: DocumentModel) -> OrphanDetail:
        return OrphanDetail(
            document_id=document.id,
            title=document.title,
            source_url=document.source_url,
            chunks_count=document.chunks_count,
        )
