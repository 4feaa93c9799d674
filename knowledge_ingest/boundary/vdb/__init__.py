"""
Vector database boundary layer.

Exports:
  - VectorIndexClient: Retrying client over a LangChain vector store
  - create_vector_store: FAISS / S3 Vectors / in-memory selection
  - classify_error, call_with_retry: Error kinds and backoff policy
  - VectorSearchResult, VectorIndexStats, DeleteResult: Result schemas

Dependencies: langchain_core, langchain_community, langchain_aws, tenacity
System role: Vector store adapter for ingestion and reconciliation
"""

from knowledge_ingest.boundary.vdb.error_classification import (
    call_with_retry,
    classify_error,
    to_vector_error,
)
from knowledge_ingest.boundary.vdb.vector_index_client import VectorIndexClient
from knowledge_ingest.boundary.vdb.vector_schemas import (
    DeleteResult,
    VectorIndexStats,
    VectorSearchResult,
)
from knowledge_ingest.boundary.vdb.vector_store_factory import create_vector_store

__all__ = [
    "DeleteResult",
    "VectorIndexClient",
    "VectorIndexStats",
    "VectorSearchResult",
    "call_with_retry",
    "classify_error",
    "create_vector_store",
    "to_vector_error",
]
