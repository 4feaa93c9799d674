"""
Exception hierarchy for knowledge ingestion.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the package
"""

import enum
from typing import Any


class KnowledgeIngestException(Exception):
    """Base exception for all knowledge ingestion errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidInputError(KnowledgeIngestException):
    """Raised when a document body or request fails validation."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class ChunkingExhaustedError(KnowledgeIngestException):
    """Raised when no chunking strategy produced chunks the backend accepts."""

    def __init__(
        self,
        message: str,
        attempted_strategies: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if attempted_strategies is not None:
            details["attempted_strategies"] = attempted_strategies
        super().__init__(message, details)


class VectorErrorKind(str, enum.Enum):
    """
    Closed classification of vector backend failures.

    TRANSIENT: network/timeout/throttling, retried with backoff
    PERMANENT: auth/validation/unknown, never retried
    CHUNK_TOO_LARGE: embedding input over the backend limit, triggers re-chunking
    NOT_CONNECTED: the index was never reachable in this process
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    CHUNK_TOO_LARGE = "chunk_too_large"
    NOT_CONNECTED = "not_connected"


class VectorIndexError(KnowledgeIngestException):
    """Base class for vector index failures."""

    kind: VectorErrorKind = VectorErrorKind.PERMANENT

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        attempts: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize vector index error.

        Args:
            message: Error message
            operation: Operation that failed (add, delete, search, stats)
            attempts: Number of attempts made before giving up
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        if attempts is not None:
            details["attempts"] = attempts
        self.operation = operation
        self.attempts = attempts
        super().__init__(message, details)

    @property
    def retryable(self) -> bool:
        """Whether the failure may succeed on a later attempt."""
        return self.kind is VectorErrorKind.TRANSIENT


class VectorIndexTransientError(VectorIndexError):
    """Network, timeout or throttling failure from the vector backend."""

    kind = VectorErrorKind.TRANSIENT


class VectorIndexPermanentError(VectorIndexError):
    """Authentication, authorization or validation failure from the vector backend."""

    kind = VectorErrorKind.PERMANENT


class ChunkTooLargeError(VectorIndexError):
    """The embedding backend rejected a chunk as too large."""

    kind = VectorErrorKind.CHUNK_TOO_LARGE


class VectorIndexNotConnectedError(VectorIndexError):
    """The vector index is not connected."""

    kind = VectorErrorKind.NOT_CONNECTED


class ConstraintRaceError(KnowledgeIngestException):
    """Raised when a source URL uniqueness race could not be resolved."""

    def __init__(
        self,
        source_url: str,
        attempts: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details.update({"source_url": source_url, "attempts": attempts})
        super().__init__(
            f"Unique constraint on source_url kept failing after {attempts} attempts",
            details,
        )


class OrphanCleanupError(KnowledgeIngestException):
    """Raised when orphaned chunks could not be removed from the vector index."""

    def __init__(
        self,
        message: str,
        document_ids: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if document_ids is not None:
            details["orphaned_document_count"] = len(document_ids)
        self.document_ids = document_ids or []
        super().__init__(message, details)
