"""
Database models package.

Exports:
  - DocumentModel: Knowledge document ORM model
  - DocumentStatus, SourceType: Lifecycle and origin enums

Dependencies: sqlalchemy, knowledge_ingest.boundary.db.base
System role: Database model definitions for domain entities
"""

from knowledge_ingest.boundary.db.models.document_model import (
    CONTENT_HASH_CONSTRAINT,
    SOURCE_URL_CONSTRAINT,
    DocumentModel,
    DocumentStatus,
    SourceType,
)

__all__ = [
    "CONTENT_HASH_CONSTRAINT",
    "SOURCE_URL_CONSTRAINT",
    "DocumentModel",
    "DocumentStatus",
    "SourceType",
]
