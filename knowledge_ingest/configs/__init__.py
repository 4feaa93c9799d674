"""
Configuration management module.

Provides centralized, type-safe configuration using Pydantic Settings.
All config modules support environment variable mapping with validation.
"""

from knowledge_ingest.configs.database import DatabaseSettings
from knowledge_ingest.configs.ingestion import IngestionSettings
from knowledge_ingest.configs.settings import Settings, get_settings
from knowledge_ingest.configs.vector_store import VectorStoreSettings

__all__ = [
    "DatabaseSettings",
    "IngestionSettings",
    "Settings",
    "VectorStoreSettings",
    "get_settings",
]
