"""
Vector store configuration settings.

Selects the vector backend (FAISS for local dev, S3 Vectors for production,
in-memory for experiments) and the retry policy applied to every vector
operation.

Dependencies: pydantic, pydantic_settings
System role: Vector database configuration for ingestion and retrieval
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from knowledge_ingest.configs.base import BaseSettings


class VectorStoreSettings(BaseSettings):
    """Vector store configuration (FAISS for dev, S3 Vectors for prod)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="VECTOR_STORE_",
        case_sensitive=False,
        extra="ignore",
    )

    store_type: str = Field(
        default="faiss",
        description="Vector store type: 'faiss', 's3' or 'memory'",
    )
    index_name: str = Field(default="knowledge-base", description="Vector index name")
    aws_region: str = Field(default="eu-central-1", description="AWS region for S3 Vectors")
    vectors_bucket: str = Field(
        default="knowledge-base-vectors",
        description="S3 Vectors bucket name",
    )
    faiss_index_dir: str = Field(
        default="/tmp/.faiss_index",
        description="Directory where the local FAISS index is persisted",
    )

    embedding_model: str = Field(
        default="models/gemini-embedding-001",
        description="Google Gemini embedding model ID",
    )
    embedding_dimension: int = Field(
        default=1024,
        description="Embedding vector dimension",
    )

    top_k: int = Field(default=5, description="Default number of search results")

    # Retry policy for vector operations
    retry_max_attempts: int = Field(
        default=3,
        description="Attempts per vector operation before giving up on transient errors",
        ge=1,
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        description="First backoff delay; doubles on every retry",
        ge=0.0,
    )
    retry_max_delay_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single backoff delay",
        ge=0.0,
    )
