"""
Knowledge base service.

Wires settings into the engine, session factory, vector index client,
ingestion orchestrator and orphan reconciler, and exposes the
operations a driver (HTTP handler, batch job, CLI) calls.

Dependencies: knowledge_ingest.boundary, knowledge_ingest.core, knowledge_ingest.configs
System role: Application facade over the ingestion core
"""

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from knowledge_ingest.boundary.db.connection import get_async_engine, get_async_session_factory
from knowledge_ingest.boundary.db.create_tables import create_tables as create_all_tables
from knowledge_ingest.boundary.db.models.document_model import SourceType
from knowledge_ingest.boundary.vdb.vector_index_client import VectorIndexClient
from knowledge_ingest.boundary.vdb.vector_schemas import VectorSearchResult
from knowledge_ingest.configs import Settings, get_settings
from knowledge_ingest.core.ingestion.ingest_service import DocumentIngestService
from knowledge_ingest.core.ingestion.orphan_reconciler import OrphanReconciler
from knowledge_ingest.models.ingestion import BatchIngestResult, IngestRequest, IngestResult
from knowledge_ingest.models.orphan import OrphanDetail, OrphanResult
from knowledge_ingest.models.statistics import IngestionStatistics

logger = logging.getLogger(__name__)


class KnowledgeService:
    """
    Facade over ingestion, reconciliation and search.

    Attributes:
        engine: Async engine owned by the service
        session_factory: Session factory bound to engine
        vector_client: Vector index client
        ingest_service: Ingestion orchestrator
        reconciler: Orphan reconciler
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        vector_client: VectorIndexClient,
        ingest_service: DocumentIngestService,
        reconciler: OrphanReconciler,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self.vector_client = vector_client
        self.ingest_service = ingest_service
        self.reconciler = reconciler

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        vector_client: VectorIndexClient | None = None,
    ) -> "KnowledgeService":
        """
        Build every component from settings.

        Args:
            settings: Application settings (environment when None)
            vector_client: Prebuilt vector client, e.g. over a test store

        Returns:
            KnowledgeService, not yet started
        """
        settings = settings or get_settings()
        engine = get_async_engine(settings.database)
        session_factory = get_async_session_factory(engine)
        vector_client = vector_client or VectorIndexClient(settings.vector_store)
        return cls(
            engine=engine,
            session_factory=session_factory,
            vector_client=vector_client,
            ingest_service=DocumentIngestService(
                session_factory,
                vector_client,
                settings=settings.ingestion,
            ),
            reconciler=OrphanReconciler(
                session_factory,
                vector_client,
                settings=settings.ingestion,
            ),
        )

    async def start(self, create_tables: bool = False) -> None:
        """
        Prepare the service for use.

        Args:
            create_tables: Create missing tables first (dev and tests)
        """
        if create_tables:
            await create_all_tables(self.engine)
        connected = await self.vector_client.connect()
        logger.info(
            f"{__name__}:start - Knowledge service started",
            extra={"vector_index_connected": connected},
        )

    async def close(self) -> None:
        """Dispose of the database engine."""
        await self.engine.dispose()
        logger.info(f"{__name__}:close - Knowledge service stopped")

    async def ingest(
        self,
        body: str,
        title: str | None = None,
        source_url: str | None = None,
        source_type: SourceType = SourceType.API,
        date: str | None = None,
    ) -> IngestResult:
        return await self.ingest_service.ingest(
            body,
            title=title,
            source_url=source_url,
            source_type=source_type,
            date=date,
        )

    async def ingest_batch(
        self,
        documents: Sequence[IngestRequest | Mapping[str, Any]],
    ) -> BatchIngestResult:
        return await self.ingest_service.ingest_batch(documents)

    async def detect_orphans(
        self,
        current_urls: Sequence[str],
        dry_run: bool = False,
    ) -> OrphanResult:
        return await self.reconciler.detect_orphans(current_urls, dry_run=dry_run)

    async def list_orphaned(self) -> list[OrphanDetail]:
        return await self.reconciler.list_orphaned()

    async def search(self, query: str, k: int | None = None) -> list[VectorSearchResult]:
        """Similarity search over indexed chunks."""
        return await self.vector_client.search(query, k=k)

    async def get_statistics(self) -> IngestionStatistics:
        return await self.ingest_service.get_statistics()
