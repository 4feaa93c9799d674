"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.

Dependencies: All config modules
System role: Central configuration aggregator for the package
"""

from functools import lru_cache

from pydantic import Field

from knowledge_ingest.configs.base import BaseSettings
from knowledge_ingest.configs.database import DatabaseSettings
from knowledge_ingest.configs.ingestion import IngestionSettings
from knowledge_ingest.configs.vector_store import VectorStoreSettings


class Settings(BaseSettings):
    """Unified settings aggregating all config modules."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Environment variables are loaded once and cached.

    Returns:
        Settings: Application settings instance

    Usage:
        from knowledge_ingest.configs import get_settings
        settings = get_settings()
    """
    return Settings()
