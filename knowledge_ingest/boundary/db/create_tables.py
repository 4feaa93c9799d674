"""
Schema bootstrap.

Creates or drops every table registered on Base.metadata. Production
deployments normally manage schema with migrations; this covers local
development and tests.

Dependencies: sqlalchemy, knowledge_ingest.boundary.db
System role: Database schema initialization
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from knowledge_ingest.boundary.db.base import Base
from knowledge_ingest.boundary.db.models import DocumentModel  # noqa: F401  registers the table

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"{__name__}:create_tables - Tables ensured: {sorted(Base.metadata.tables)}")


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info(f"{__name__}:drop_tables - Tables dropped")
