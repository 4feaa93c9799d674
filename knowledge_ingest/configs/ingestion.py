"""
Ingestion pipeline configuration.

Concurrency cap for batch ingestion, transaction retry schedule for the
source URL race, title generation and backend limits honoured by chunking.

Dependencies: pydantic, pydantic_settings
System role: Tunables for the ingestion orchestrator and orphan reconciler
"""

from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict

from knowledge_ingest.configs.base import BaseSettings


class IngestionSettings(BaseSettings):
    """Settings for document ingestion and reconciliation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INGEST_",
        case_sensitive=False,
        extra="ignore",
    )

    max_concurrent_documents: int = Field(
        default=15,
        description="Maximum single-document ingestions in flight during a batch",
        ge=1,
    )

    transaction_max_attempts: int = Field(
        default=3,
        description="Attempts for the URL-replacement transaction on unique violations",
        ge=1,
    )
    transaction_retry_delays_ms: list[int] = Field(
        default=[10, 50, 100],
        description="Backoff before each transaction retry (last value repeats)",
    )

    title_max_length: int = Field(
        default=50,
        description="Characters of content used for generated titles",
        ge=1,
    )

    max_chunk_chars: int = Field(
        default=32000,
        description="Largest chunk the embedding backend accepts",
        ge=1,
    )
    max_metadata_keys: int = Field(
        default=16,
        description="Maximum metadata keys per vector record",
        ge=1,
    )

    orphan_query_limit: int = Field(
        default=1000,
        description="Maximum documents examined per orphan detection run",
        ge=1,
        le=10000,
    )
    orphan_large_url_threshold: int = Field(
        default=500,
        description="Above this many URLs orphan lookup filters in memory",
        ge=1,
    )

    @field_validator("transaction_retry_delays_ms")
    @classmethod
    def _require_delays(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("transaction_retry_delays_ms needs at least one delay")
        if any(delay < 0 for delay in value):
            raise ValueError("transaction_retry_delays_ms cannot contain negative delays")
        return value
