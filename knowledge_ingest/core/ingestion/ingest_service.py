"""
Document ingestion orchestrator.

Coordinates hashing, chunking, vector indexing and the document
repository for a single document, and fans batches out under a fixed
concurrency cap.

Per document the steps are strictly sequential: dedup by content hash,
chunk with the fallback ladder, index the chunks, then write the record
in a transaction that replaces whatever document holds the same
source_url. Stale vectors are deleted after the replacement row is
flushed and before the transaction commits, so a rolled back replacement
leaves the old row and its vectors intact. A document row is never
written without its chunks being in the index.

Dependencies: sqlalchemy, knowledge_ingest.boundary, knowledge_ingest.core
System role: Ingestion entry point for HTTP handlers, jobs and CLIs
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_ingest.boundary.db.base import utcnow
from knowledge_ingest.boundary.db.connection import transaction
from knowledge_ingest.boundary.db.CRUD.document_crud import (
    DocumentCRUD,
    document_crud,
    violated_constraint,
)
from knowledge_ingest.boundary.db.models.document_model import DocumentModel, SourceType
from knowledge_ingest.boundary.vdb.vector_index_client import VectorIndexClient
from knowledge_ingest.configs.ingestion import IngestionSettings
from knowledge_ingest.core.exceptions import (
    ChunkingExhaustedError,
    ChunkTooLargeError,
    ConstraintRaceError,
    InvalidInputError,
    VectorErrorKind,
    VectorIndexError,
)
from knowledge_ingest.core.ingestion.chunker import ChunkingResult, ChunkSource, TextChunker
from knowledge_ingest.core.ingestion.content_hasher import compute_hash, normalize_content
from knowledge_ingest.models.ingestion import (
    BatchIngestResult,
    IngestRequest,
    IngestResult,
    IngestStatus,
)
from knowledge_ingest.models.statistics import IngestionStatistics
from knowledge_ingest.observability.correlation import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from knowledge_ingest.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

SCRAPED_CATEGORY = "scraped_document"
INGESTED_CATEGORY = "ingested_document"


@dataclass
class _StoreOutcome:
    """Result of the URL-replacement transaction."""

    document: DocumentModel | None = None
    replaced_document_id: uuid.UUID | None = None
    duplicate_of: DocumentModel | None = None
    reason: str | None = None


def generate_title(text: str, max_length: int = 50) -> str:
    """First max_length characters of text, with "..." when truncated."""
    if len(text) <= max_length:
        return text
    return text[:max_length].rstrip() + "..."


class DocumentIngestService:
    """
    Ingestion orchestrator.

    Attributes:
        session_factory: Produces sessions for reads and transactions
        vector_client: Vector index the chunks are written to
        chunker: Fallback-ladder chunker
        settings: Concurrency and retry tunables
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        vector_client: VectorIndexClient,
        chunker: TextChunker | None = None,
        settings: IngestionSettings | None = None,
        crud: DocumentCRUD = document_crud,
    ) -> None:
        self.session_factory = session_factory
        self.vector_client = vector_client
        self.settings = settings or IngestionSettings()
        self.chunker = chunker or TextChunker(
            max_chunk_chars=self.settings.max_chunk_chars,
            max_metadata_keys=self.settings.max_metadata_keys,
        )
        self._crud = crud

    async def ingest(
        self,
        body: str,
        title: str | None = None,
        source_url: str | None = None,
        source_type: SourceType = SourceType.API,
        date: str | None = None,
    ) -> IngestResult:
        """
        Ingest one document.

        Validation, chunking and vector failures are reported as a
        failed IngestResult. Database failures and an unresolved
        source_url race propagate.

        Args:
            body: Raw document text
            title: Title (generated from content when empty)
            source_url: Origin URL; an existing document at this URL is replaced
            source_type: Document origin
            date: Document date passed through to metadata

        Returns:
            IngestResult with status indexed, duplicate_rejected or failed

        Raises:
            ConstraintRaceError: source_url kept colliding and no winner was found
            SQLAlchemyError: Relational store failure
        """
        # Blank URLs mean "no URL"; storing "" would collide on the unique column.
        source_url = (source_url.strip() or None) if source_url else None
        try:
            return await self._ingest(body, title, source_url, source_type, date)
        except (InvalidInputError, ChunkingExhaustedError, VectorIndexError) as e:
            log_exception_with_context(
                logger,
                f"{__name__}:ingest - Ingestion failed",
                e,
                source_url=source_url,
            )
            return IngestResult(
                success=False,
                status=IngestStatus.FAILED,
                title=title,
                source_url=source_url,
                date=date,
                error=str(e),
            )

    async def _ingest(
        self,
        body: str,
        title: str | None,
        source_url: str | None,
        source_type: SourceType | str,
        date: str | None,
    ) -> IngestResult:
        if not isinstance(body, str) or not body.strip():
            raise InvalidInputError("Document body must be non-empty text", field="body")
        try:
            source_type = SourceType(source_type)
        except ValueError as e:
            raise InvalidInputError(f"Unknown source type: {source_type}", field="source_type") from e

        normalized = normalize_content(body)
        content_hash = compute_hash(normalized)

        async with self.session_factory() as session:
            existing = await self._crud.get_by_hash(session, content_hash)
        if existing is not None:
            logger.info(
                f"{__name__}:ingest - Duplicate content, keeping {existing.id}",
                extra={"content_hash": content_hash[:12]},
            )
            return self._duplicate_result(existing, content_hash, "identical content already indexed", date)

        generated_title = not (title and title.strip())
        final_title = (
            generate_title(normalized, self.settings.title_max_length)
            if generated_title
            else title.strip()
        )

        document_id = uuid.uuid4()
        source = ChunkSource(
            document_id=str(document_id),
            document_name=final_title,
            upload_source=source_type.value,
            upload_time=utcnow(),
            category=SCRAPED_CATEGORY if source_type is SourceType.SCRAPER else INGESTED_CATEGORY,
            extra={"source_url": source_url, "content_hash": content_hash, "document_date": date},
        )
        chunking = await self._index_with_fallback(normalized, source)
        chunk_ids = [chunk.id for chunk in chunking.chunks]

        metadata: dict[str, Any] = {
            "date": date,
            "source_url": source_url,
            "generated_title": generated_title,
            "chunking_strategy": chunking.strategy.name,
            "avg_chunk_size": chunking.avg_chunk_size,
            "category": source.category,
        }
        try:
            outcome = await self._store_document(
                document_id=document_id,
                title=final_title,
                content_hash=content_hash,
                source_type=source_type,
                source_url=source_url,
                chunk_ids=chunk_ids,
                total_chars=len(normalized),
                metadata=metadata,
            )
        except Exception:
            await self._discard_chunks(chunk_ids)
            raise

        if outcome.duplicate_of is not None:
            await self._discard_chunks(chunk_ids)
            return self._duplicate_result(outcome.duplicate_of, content_hash, outcome.reason, date)

        document = outcome.document
        logger.info(
            f"{__name__}:ingest - Indexed document {document.id}",
            extra={
                "chunk_count": len(chunk_ids),
                "strategy": chunking.strategy.name,
                "replaced": str(outcome.replaced_document_id) if outcome.replaced_document_id else None,
            },
        )
        return IngestResult(
            success=True,
            status=IngestStatus.INDEXED,
            document_id=document.id,
            title=document.title,
            source_url=source_url,
            date=date,
            chunks_count=len(chunk_ids),
            total_length=len(normalized),
            generated_title=generated_title,
            chunking_strategy=chunking.strategy.name,
            replaced_document_id=outcome.replaced_document_id,
        )

    async def _index_with_fallback(self, text: str, source: ChunkSource) -> ChunkingResult:
        """
        Chunk and index, stepping down the ladder when the backend rejects chunk size.

        Raises:
            ChunkingExhaustedError: Every remaining tier was rejected
            VectorIndexError: Any other indexing failure
        """
        chunking = self.chunker.chunk_with_fallback(text, source)
        while True:
            chunk_ids = [chunk.id for chunk in chunking.chunks]
            try:
                await self.vector_client.add_documents(chunking.chunks)
                return chunking
            except ChunkTooLargeError:
                logger.warning(
                    f"{__name__}:_index_with_fallback - Backend rejected {chunking.strategy.name} chunks",
                    extra={"document_id": source.document_id},
                )
                await self._discard_chunks(chunk_ids)
                chunking = self.chunker.chunk_with_fallback(
                    text,
                    source,
                    skip_through=chunking.strategy.name,
                )
            except VectorIndexError as e:
                if e.kind is not VectorErrorKind.NOT_CONNECTED:
                    await self._discard_chunks(chunk_ids)
                raise

    async def _store_document(
        self,
        *,
        document_id: uuid.UUID,
        title: str,
        content_hash: str,
        source_type: SourceType,
        source_url: str | None,
        chunk_ids: list[str],
        total_chars: int,
        metadata: dict[str, Any],
    ) -> _StoreOutcome:
        """
        Write the document record, replacing the one stored under source_url.

        The read of the current holder of source_url, the deletion of its
        row, the insert and the deletion of its vectors all happen in one
        transaction, in that order. A unique violation on source_url means
        another writer committed in between, so the whole transaction is
        retried.
        """
        max_attempts = self.settings.transaction_max_attempts
        delays = self.settings.transaction_retry_delays_ms

        for attempt in range(1, max_attempts + 1):
            try:
                async with transaction(self.session_factory) as session:
                    stale = None
                    if source_url:
                        stale = await self._crud.get_by_source_url(session, source_url)
                        if stale is not None and stale.content_hash == content_hash:
                            return _StoreOutcome(
                                duplicate_of=stale,
                                reason="identical content stored concurrently",
                            )
                        if stale is not None:
                            await self._crud.delete_document(session, stale.id)

                    # Insert is flushed first so a constraint error rolls back
                    # before any stale vectors are touched.
                    document = await self._crud.create_document(
                        session,
                        id=document_id,
                        title=title,
                        content_hash=content_hash,
                        source_type=source_type,
                        source_url=source_url,
                        chunk_refs=chunk_ids,
                        total_chars=total_chars,
                        metadata=metadata,
                    )
                    if stale is not None:
                        await self.vector_client.delete_chunks(stale.chunk_refs)
                return _StoreOutcome(
                    document=document,
                    replaced_document_id=stale.id if stale is not None else None,
                )

            except IntegrityError as e:
                column = violated_constraint(e)
                if column == "content_hash":
                    async with self.session_factory() as session:
                        winner = await self._crud.get_by_hash(session, content_hash)
                    if winner is None:
                        raise
                    return _StoreOutcome(
                        duplicate_of=winner,
                        reason="identical content stored concurrently",
                    )
                if column != "source_url" or not source_url:
                    raise

                logger.warning(
                    f"{__name__}:_store_document - source_url conflict, attempt {attempt}/{max_attempts}",
                    extra={"source_url": source_url},
                )
                if attempt < max_attempts:
                    delay_ms = delays[min(attempt - 1, len(delays) - 1)]
                    await asyncio.sleep(delay_ms / 1000)

        async with self.session_factory() as session:
            winner = await self._crud.get_by_source_url(session, source_url)
        if winner is not None:
            logger.info(
                f"{__name__}:_store_document - Concurrent writer kept {winner.id}",
                extra={"source_url": source_url},
            )
            return _StoreOutcome(duplicate_of=winner, reason="race condition resolved")
        raise ConstraintRaceError(source_url, max_attempts)

    async def _discard_chunks(self, chunk_ids: Sequence[str]) -> None:
        """Best-effort removal of chunks no record will reference."""
        if not chunk_ids or not self.vector_client.is_connected:
            return
        try:
            await self.vector_client.delete_chunks(chunk_ids)
        except VectorIndexError as e:
            logger.warning(
                f"{__name__}:_discard_chunks - Could not remove {len(chunk_ids)} unreferenced chunks: {e}"
            )

    @staticmethod
    def _duplicate_result(
        document: DocumentModel,
        content_hash: str,
        reason: str | None,
        date: str | None,
    ) -> IngestResult:
        return IngestResult(
            success=True,
            status=IngestStatus.DUPLICATE_REJECTED,
            document_id=document.id,
            title=document.title,
            source_url=document.source_url,
            date=date,
            chunks_count=document.chunks_count,
            total_length=document.total_chars,
            reason=reason,
            duplicate_hash=content_hash,
        )

    async def ingest_batch(
        self,
        documents: Sequence[IngestRequest | Mapping[str, Any]],
    ) -> BatchIngestResult:
        """
        Ingest many documents with at most max_concurrent_documents in flight.

        Each item is validated and ingested independently; any exception
        becomes a failed detail instead of aborting the batch.

        Args:
            documents: IngestRequest objects or dicts with the same fields

        Returns:
            BatchIngestResult whose counts sum to total

        Raises:
            InvalidInputError: Empty batch
        """
        if not documents:
            raise InvalidInputError("Batch must contain at least one document", field="documents")

        previous_id = get_correlation_id()
        batch_id = set_correlation_id()
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_documents)
        logger.info(
            f"{__name__}:ingest_batch - Starting batch of {len(documents)} documents",
            extra={"batch_id": batch_id, "max_concurrent": self.settings.max_concurrent_documents},
        )

        async def _guarded(item: IngestRequest | Mapping[str, Any]) -> IngestResult:
            async with semaphore:
                source_url = None
                try:
                    request = (
                        item if isinstance(item, IngestRequest) else IngestRequest.model_validate(item)
                    )
                    source_url = request.source_url
                    return await self.ingest(
                        request.body,
                        title=request.title,
                        source_url=request.source_url,
                        source_type=request.source_type,
                        date=request.date,
                    )
                except Exception as e:
                    log_exception_with_context(
                        logger,
                        f"{__name__}:ingest_batch - Document failed",
                        e,
                        batch_id=batch_id,
                    )
                    return IngestResult(
                        success=False,
                        status=IngestStatus.FAILED,
                        source_url=source_url,
                        error=str(e),
                    )

        try:
            details = list(await asyncio.gather(*(_guarded(item) for item in documents)))
        finally:
            if previous_id:
                set_correlation_id(previous_id)
            else:
                clear_correlation_id()

        successful = sum(1 for d in details if d.status is IngestStatus.INDEXED)
        duplicates = sum(1 for d in details if d.status is IngestStatus.DUPLICATE_REJECTED)
        failed = len(details) - successful - duplicates

        logger.info(
            f"{__name__}:ingest_batch - Batch complete",
            extra={
                "batch_id": batch_id,
                "successful": successful,
                "duplicates": duplicates,
                "failed": failed,
            },
        )
        return BatchIngestResult(
            success=failed == 0,
            total=len(details),
            successful=successful,
            failed=failed,
            duplicates=duplicates,
            details=details,
        )

    async def get_statistics(self) -> IngestionStatistics:
        """Document counts from the repository plus vector index status."""
        async with self.session_factory() as session:
            database = await self._crud.get_statistics(session)
        return IngestionStatistics(
            database=database,
            vector_index=await self.vector_client.stats(),
            timestamp=utcnow(),
        )
