"""
Application services.

Exports:
  - KnowledgeService: Facade over ingestion, reconciliation and search
"""

from knowledge_ingest.application.services.knowledge_service import KnowledgeService

__all__ = ["KnowledgeService"]
