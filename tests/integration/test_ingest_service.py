"""
Integration tests for DocumentIngestService.

Runs the orchestrator against in-memory SQLite and an in-memory vector
store. Source URL races are reproduced by making the in-transaction
read miss a row that is already committed, which is exactly what a
concurrent writer committing between read and insert looks like.

System role: Verification of dedup, replacement, race handling and batching
"""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.vectorstores import InMemoryVectorStore
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from knowledge_ingest.boundary.db.base import Base
from knowledge_ingest.boundary.db.CRUD.document_crud import document_crud
from knowledge_ingest.boundary.db.models.document_model import SourceType
from knowledge_ingest.boundary.vdb.vector_index_client import VectorIndexClient
from knowledge_ingest.configs import IngestionSettings
from knowledge_ingest.core.exceptions import (
    ChunkTooLargeError,
    ConstraintRaceError,
    InvalidInputError,
    VectorIndexPermanentError,
)
from knowledge_ingest.core.ingestion.content_hasher import compute_hash, normalize_content
from knowledge_ingest.core.ingestion.ingest_service import DocumentIngestService, generate_title
from knowledge_ingest.models.ingestion import IngestRequest, IngestResult, IngestStatus

URL = "https://x/y"
V1 = "v1 content: the office is open Monday to Friday. " * 20
V2 = "v2 content: the office is open every day except Sunday. " * 20


def _chunk_ids_for(store: InMemoryVectorStore, document_id) -> set[str]:
    prefix = f"{document_id}_chunk_"
    return {chunk_id for chunk_id in store.store if chunk_id.startswith(prefix)}


class TestIngestSingleDocument:
    """Test suite for DocumentIngestService.ingest() happy paths."""

    @pytest.mark.asyncio
    async def test_ingest_indexes_chunks_and_writes_record(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Act
        result = await ingest_service.ingest(
            V1, title="Opening hours", source_url=URL, source_type=SourceType.SCRAPER, date="2024-05-01"
        )

        # Assert
        assert result.success is True
        assert result.status is IngestStatus.INDEXED
        assert result.chunks_count >= 1
        assert result.total_length == len(normalize_content(V1))
        assert result.generated_title is False
        assert result.chunking_strategy == "xlarge"

        async with session_factory() as session:
            stored = await document_crud.get_by_id(session, result.document_id)
        assert stored.content_hash == compute_hash(normalize_content(V1))
        assert stored.source_url == URL
        assert stored.doc_metadata["category"] == "scraped_document"
        assert set(stored.chunk_refs) == _chunk_ids_for(vector_store, result.document_id)

    @pytest.mark.asyncio
    async def test_missing_title_is_generated_from_content(
        self,
        ingest_service: DocumentIngestService,
    ) -> None:
        # Act
        result = await ingest_service.ingest(V1)

        # Assert
        assert result.generated_title is True
        assert result.title == generate_title(normalize_content(V1), 50)
        assert result.title.endswith("...")

    def test_generate_title_keeps_short_text(self) -> None:
        assert generate_title("Short", 50) == "Short"
        assert generate_title("x" * 60, 50) == "x" * 50 + "..."

    @pytest.mark.asyncio
    async def test_chunk_metadata_carries_document_fields(
        self,
        ingest_service: DocumentIngestService,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Act
        result = await ingest_service.ingest(V1, source_url=URL, date="2024-05-01")

        # Assert
        stored = vector_store.get_by_ids([f"{result.document_id}_chunk_0"])[0]
        assert stored.metadata["source_document_id"] == str(result.document_id)
        assert stored.metadata["source_url"] == URL
        assert stored.metadata["document_date"] == "2024-05-01"
        assert stored.metadata["category"] == "ingested_document"
        assert len(stored.metadata) <= 16


class TestIngestValidationAndFailures:
    """Test suite for failure outcomes of ingest()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "   \r\n  ", None])
    async def test_empty_body_fails_without_side_effects(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
        vector_store: InMemoryVectorStore,
        body,
    ) -> None:
        # Act
        result = await ingest_service.ingest(body)

        # Assert
        assert result.success is False
        assert result.status is IngestStatus.FAILED
        assert "non-empty" in result.error
        async with session_factory() as session:
            assert await document_crud.count_all(session) == 0
        assert len(vector_store.store) == 0

    @pytest.mark.asyncio
    async def test_unknown_source_type_fails(self, ingest_service: DocumentIngestService) -> None:
        result = await ingest_service.ingest(V1, source_type="newsletter")
        assert result.status is IngestStatus.FAILED

    @pytest.mark.asyncio
    async def test_permanent_vector_failure_writes_no_record(
        self,
        session_factory,
        vector_settings,
        ingestion_settings,
    ) -> None:
        # Arrange
        store = MagicMock()
        store.aadd_documents = AsyncMock(side_effect=RuntimeError("401 Unauthorized"))
        store.adelete = AsyncMock(return_value=True)
        client = VectorIndexClient(vector_settings, vector_store=store)
        service = DocumentIngestService(session_factory, client, settings=ingestion_settings)

        # Act
        result = await service.ingest(V1, source_url=URL)

        # Assert
        assert result.status is IngestStatus.FAILED
        assert "Unauthorized" in result.error
        store.aadd_documents.assert_awaited_once()
        async with session_factory() as session:
            assert await document_crud.count_all(session) == 0

    @pytest.mark.asyncio
    async def test_disconnected_index_fails_ingest(
        self,
        session_factory,
        vector_settings,
        ingestion_settings,
    ) -> None:
        # Arrange
        client = VectorIndexClient(vector_settings, store_factory=lambda _: None)
        service = DocumentIngestService(session_factory, client, settings=ingestion_settings)

        # Act
        result = await service.ingest(V1)

        # Assert
        assert result.status is IngestStatus.FAILED
        assert "not connected" in result.error
        async with session_factory() as session:
            assert await document_crud.count_all(session) == 0

    @pytest.mark.asyncio
    async def test_chunk_size_rejection_falls_back_to_smaller_tier(
        self,
        ingest_service: DocumentIngestService,
        vector_client: VectorIndexClient,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        body = "A sentence about municipal waste collection schedules. " * 800
        real_add = vector_client.add_documents
        rejected_strategies = []

        async def reject_big_chunks(chunks):
            if max(len(chunk.content) for chunk in chunks) > 9000:
                rejected_strategies.append(chunks[0].metadata["chunking_strategy"])
                raise ChunkTooLargeError("chunk too large", operation="add")
            return await real_add(chunks)

        # Act
        with patch.object(vector_client, "add_documents", side_effect=reject_big_chunks):
            result = await ingest_service.ingest(body)

        # Assert
        assert result.status is IngestStatus.INDEXED
        assert rejected_strategies == ["xlarge", "large"]
        assert result.chunking_strategy == "medium"
        assert set(vector_store.store) == _chunk_ids_for(vector_store, result.document_id)


class TestIngestDeduplication:
    """Test suite for hash-based dedup."""

    @pytest.mark.asyncio
    async def test_identical_content_is_rejected_as_duplicate(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        first = await ingest_service.ingest(V1, title="First")
        chunks_after_first = set(vector_store.store)

        # Act
        second = await ingest_service.ingest("\r\n" + V1.replace("\n", "\r\n") + "  ", title="Other title")

        # Assert
        assert second.success is True
        assert second.status is IngestStatus.DUPLICATE_REJECTED
        assert second.document_id == first.document_id
        assert second.duplicate_hash == compute_hash(normalize_content(V1))
        assert set(vector_store.store) == chunks_after_first
        async with session_factory() as session:
            assert await document_crud.count_all(session) == 1


class TestIngestSourceUrlReplacement:
    """Test suite for replacement and race handling on source_url."""

    @pytest.mark.asyncio
    async def test_new_content_at_same_url_replaces_document(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        first = await ingest_service.ingest(V1, source_url=URL)

        # Act
        second = await ingest_service.ingest(V2, source_url=URL)

        # Assert
        assert second.status is IngestStatus.INDEXED
        assert second.replaced_document_id == first.document_id
        assert _chunk_ids_for(vector_store, first.document_id) == set()
        async with session_factory() as session:
            assert await document_crud.get_by_id(session, first.document_id) is None
            current = await document_crud.get_by_source_url(session, URL)
        assert current.id == second.document_id

    @pytest.mark.asyncio
    async def test_stale_vector_delete_failure_keeps_old_document(
        self,
        ingest_service: DocumentIngestService,
        vector_client: VectorIndexClient,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        first = await ingest_service.ingest(V1, source_url=URL)
        first_chunks = _chunk_ids_for(vector_store, first.document_id)
        real_delete = vector_client.delete_chunks
        failing_ids = set(first_chunks)

        async def fail_on_stale(ids):
            if set(ids) & failing_ids:
                raise VectorIndexPermanentError("simulated backend failure", operation="delete")
            return await real_delete(ids)

        # Act
        with patch.object(vector_client, "delete_chunks", side_effect=fail_on_stale):
            second = await ingest_service.ingest(V2, source_url=URL)

        # Assert
        assert second.status is IngestStatus.FAILED
        assert set(vector_store.store) == first_chunks
        async with session_factory() as session:
            current = await document_crud.get_by_source_url(session, URL)
        assert current.id == first.document_id

    @pytest.mark.asyncio
    async def test_concurrent_writer_on_same_url_is_replaced_on_retry(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        first = await ingest_service.ingest(V1, source_url=URL)
        real_lookup = document_crud.get_by_source_url
        calls = {"count": 0}

        async def first_read_misses(session, source_url):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await real_lookup(session, source_url)

        # Act
        with patch.object(
            document_crud, "get_by_source_url", new=AsyncMock(side_effect=first_read_misses)
        ):
            second = await ingest_service.ingest(V2, source_url=URL)

        # Assert
        assert calls["count"] == 2
        assert second.status is IngestStatus.INDEXED
        assert second.replaced_document_id == first.document_id
        async with session_factory() as session:
            current = await document_crud.get_by_source_url(session, URL)
            assert await document_crud.count_all(session) == 1
        assert current.content_hash == compute_hash(normalize_content(V2))
        assert _chunk_ids_for(vector_store, first.document_id) == set()
        assert set(vector_store.store) == set(current.chunk_refs)

    @pytest.mark.asyncio
    async def test_exhausted_retries_resolve_to_duplicate_when_winner_exists(
        self,
        ingest_service: DocumentIngestService,
        ingestion_settings: IngestionSettings,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        first = await ingest_service.ingest(V1, source_url=URL)
        real_lookup = document_crud.get_by_source_url
        attempts = ingestion_settings.transaction_max_attempts
        calls = {"count": 0}

        async def reads_miss_inside_transactions(session, source_url):
            calls["count"] += 1
            if calls["count"] <= attempts:
                return None
            return await real_lookup(session, source_url)

        # Act
        with patch.object(
            document_crud,
            "get_by_source_url",
            new=AsyncMock(side_effect=reads_miss_inside_transactions),
        ):
            second = await ingest_service.ingest(V2, source_url=URL)

        # Assert
        assert second.status is IngestStatus.DUPLICATE_REJECTED
        assert second.reason == "race condition resolved"
        assert second.document_id == first.document_id
        assert set(vector_store.store) == _chunk_ids_for(vector_store, first.document_id)
        async with session_factory() as session:
            assert await document_crud.count_all(session) == 1

    @pytest.mark.asyncio
    async def test_unresolvable_race_raises_and_cleans_up_chunks(
        self,
        ingest_service: DocumentIngestService,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        first = await ingest_service.ingest(V1, source_url=URL)

        # Act
        with patch.object(document_crud, "get_by_source_url", new=AsyncMock(return_value=None)):
            with pytest.raises(ConstraintRaceError) as exc_info:
                await ingest_service.ingest(V2, source_url=URL)

        # Assert
        assert exc_info.value.details["attempts"] == 3
        assert set(vector_store.store) == _chunk_ids_for(vector_store, first.document_id)

    @pytest.mark.asyncio
    async def test_hash_conflict_during_replacement_keeps_stale_vectors(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
        vector_store: InMemoryVectorStore,
    ) -> None:
        # Arrange
        stale = await ingest_service.ingest(V1, source_url=URL)
        elsewhere = await ingest_service.ingest(V2, source_url="https://x/other")
        stale_chunks = _chunk_ids_for(vector_store, stale.document_id)
        real_lookup = document_crud.get_by_hash
        calls = {"count": 0}

        async def first_hash_check_misses(session, content_hash):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await real_lookup(session, content_hash)

        # Act
        with patch.object(
            document_crud, "get_by_hash", new=AsyncMock(side_effect=first_hash_check_misses)
        ):
            result = await ingest_service.ingest(V2, source_url=URL)

        # Assert
        assert result.status is IngestStatus.DUPLICATE_REJECTED
        assert result.document_id == elsewhere.document_id
        assert stale_chunks
        assert _chunk_ids_for(vector_store, stale.document_id) == stale_chunks
        async with session_factory() as session:
            current = await document_crud.get_by_source_url(session, URL)
            assert await document_crud.count_all(session) == 2
        assert current.id == stale.document_id
        assert set(current.chunk_refs) == stale_chunks
        assert set(vector_store.store) == stale_chunks | _chunk_ids_for(
            vector_store, elsewhere.document_id
        )

    @pytest.mark.asyncio
    async def test_blank_source_urls_are_stored_as_missing(
        self,
        ingest_service: DocumentIngestService,
        session_factory,
    ) -> None:
        # Act
        first = await ingest_service.ingest(V1, source_url="")
        second = await ingest_service.ingest(V2, source_url="   ")

        # Assert
        assert first.status is IngestStatus.INDEXED
        assert second.status is IngestStatus.INDEXED
        assert second.replaced_document_id is None
        async with session_factory() as session:
            stored = await document_crud.get_by_id(session, second.document_id)
            assert await document_crud.count_all(session) == 2
        assert stored.source_url is None


class TestConcurrentIngestOnFileDatabase:
    """Two real concurrent writers on one URL converge to one document."""

    @pytest.mark.asyncio
    async def test_two_writers_same_url_leave_one_document(
        self,
        tmp_path,
        vector_client: VectorIndexClient,
        vector_store: InMemoryVectorStore,
        ingestion_settings: IngestionSettings,
    ) -> None:
        # Arrange
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
            poolclass=NullPool,
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        service = DocumentIngestService(factory, vector_client, settings=ingestion_settings)

        try:
            # Act
            results = await asyncio.gather(
                service.ingest(V1, source_url=URL),
                service.ingest(V2, source_url=URL),
            )

            # Assert
            assert all(result.success for result in results)
            async with factory() as session:
                assert await document_crud.count_all(session) == 1
                survivor = await document_crud.get_by_source_url(session, URL)
            assert survivor.content_hash in {
                compute_hash(normalize_content(V1)),
                compute_hash(normalize_content(V2)),
            }
            assert set(vector_store.store) == set(survivor.chunk_refs)
        finally:
            await engine.dispose()


class TestIngestBatch:
    """Test suite for DocumentIngestService.ingest_batch()."""

    @pytest.mark.asyncio
    async def test_empty_batch_is_rejected(self, ingest_service: DocumentIngestService) -> None:
        with pytest.raises(InvalidInputError):
            await ingest_service.ingest_batch([])

    @pytest.mark.asyncio
    async def test_batch_accounting(self, session_factory, vector_client) -> None:
        # Arrange
        service = DocumentIngestService(
            session_factory,
            vector_client,
            settings=IngestionSettings(max_concurrent_documents=1, transaction_retry_delays_ms=[0]),
        )
        documents = [
            {"body": V1, "sourceUrl": "https://x/1", "sourceType": "scraper"},
            IngestRequest(body=V2, source_url="https://x/2"),
            {"body": V1},
            {"body": "   "},
            {"title": "no body"},
        ]

        # Act
        result = await service.ingest_batch(documents)

        # Assert
        assert result.total == 5
        assert len(result.details) == 5
        assert result.successful == 2
        assert result.duplicates == 1
        assert result.failed == 2
        assert result.successful + result.failed + result.duplicates == result.total
        assert result.success is False

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, ingest_service: DocumentIngestService) -> None:
        # Arrange
        async def flaky_ingest(body, **kwargs):
            if body == "boom":
                raise RuntimeError("database unreachable")
            return IngestResult(success=True, status=IngestStatus.INDEXED, document_id=uuid.uuid4())

        # Act
        with patch.object(ingest_service, "ingest", side_effect=flaky_ingest):
            result = await ingest_service.ingest_batch([{"body": "ok"}, {"body": "boom"}, {"body": "fine"}])

        # Assert
        assert result.successful == 2
        assert result.failed == 1
        failed = [d for d in result.details if d.status is IngestStatus.FAILED]
        assert failed[0].error == "database unreachable"

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, ingest_service: DocumentIngestService) -> None:
        # Arrange
        in_flight = 0
        peak = 0

        async def slow_ingest(body, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return IngestResult(success=True, status=IngestStatus.INDEXED, document_id=uuid.uuid4())

        documents = [{"body": f"document {i}"} for i in range(50)]

        # Act
        with patch.object(ingest_service, "ingest", side_effect=slow_ingest):
            result = await ingest_service.ingest_batch(documents)

        # Assert
        assert result.total == 50
        assert result.successful == 50
        assert peak == 15
