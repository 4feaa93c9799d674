"""
Shared test fixtures and configuration for entire test suite.

Provides: In-memory SQLite database, in-memory vector store, wired
ingestion components, document factories
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite, langchain_core
System role: Test infrastructure and fixture management
"""

import uuid

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.vectorstores import InMemoryVectorStore
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from knowledge_ingest.boundary.db.base import Base
from knowledge_ingest.boundary.db.CRUD.document_crud import document_crud
from knowledge_ingest.boundary.db.models.document_model import SourceType
from knowledge_ingest.boundary.vdb.vector_index_client import VectorIndexClient
from knowledge_ingest.configs import IngestionSettings, VectorStoreSettings
from knowledge_ingest.core.ingestion.ingest_service import DocumentIngestService
from knowledge_ingest.core.ingestion.orphan_reconciler import OrphanReconciler


@pytest.fixture
async def test_engine():
    """
    Create in-memory SQLite async engine with all tables.

    Yields:
        AsyncEngine: Engine sharing one connection across sessions
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_async_db(session_factory):
    """
    Session for direct repository tests.

    Yields:
        AsyncSession: Test database session, rolled back afterwards
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def vector_settings() -> VectorStoreSettings:
    """Vector settings with zero backoff so retry tests run instantly."""
    return VectorStoreSettings(
        store_type="memory",
        index_name="test-index",
        retry_max_attempts=3,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
    )


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    """In-memory LangChain store with deterministic fake embeddings."""
    return InMemoryVectorStore(embedding=DeterministicFakeEmbedding(size=16))


@pytest.fixture
def vector_client(vector_settings, vector_store) -> VectorIndexClient:
    """Connected vector client over the in-memory store."""
    return VectorIndexClient(vector_settings, vector_store=vector_store)


@pytest.fixture
def ingestion_settings() -> IngestionSettings:
    """Ingestion settings with no transaction backoff."""
    return IngestionSettings(
        max_concurrent_documents=15,
        transaction_max_attempts=3,
        transaction_retry_delays_ms=[0],
    )


@pytest.fixture
def ingest_service(session_factory, vector_client, ingestion_settings) -> DocumentIngestService:
    """Ingestion orchestrator over the test database and vector store."""
    return DocumentIngestService(session_factory, vector_client, settings=ingestion_settings)


@pytest.fixture
def reconciler(session_factory, vector_client, ingestion_settings) -> OrphanReconciler:
    """Orphan reconciler over the test database and vector store."""
    return OrphanReconciler(session_factory, vector_client, settings=ingestion_settings)


@pytest.fixture
def make_document(session_factory):
    """
    Factory inserting a committed document row.

    Returns:
        Callable: async (title, source_url, source_type, chunk_refs, content_hash) -> DocumentModel
    """

    async def _make(
        title: str = "Stored document",
        source_url: str | None = None,
        source_type: SourceType = SourceType.SCRAPER,
        chunk_refs: list[str] | None = None,
        content_hash: str | None = None,
    ):
        async with session_factory() as session:
            async with session.begin():
                document = await document_crud.create_document(
                    session,
                    title=title,
                    content_hash=content_hash or uuid.uuid4().hex * 2,
                    source_type=source_type,
                    source_url=source_url,
                    chunk_refs=chunk_refs or [],
                    total_chars=100,
                )
        return document

    return _make
