"""
Vector backend error classification and retry.

Backends surface failures as arbitrary exceptions. classify_error maps
them onto the closed VectorErrorKind enum using exception types, AWS
error codes and known message signatures. call_with_retry runs one
vector operation under that classification: transient failures are
retried with exponential backoff, everything else propagates at once.

Dependencies: tenacity, botocore, knowledge_ingest.core.exceptions
System role: Retry/backoff policy for every vector index operation
"""

import logging
from typing import Awaitable, Callable, TypeVar

from botocore.exceptions import ClientError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_ingest.core.exceptions import (
    ChunkTooLargeError,
    VectorErrorKind,
    VectorIndexError,
    VectorIndexNotConnectedError,
    VectorIndexPermanentError,
    VectorIndexTransientError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHUNK_TOO_LARGE_SIGNATURES = (
    "too large",
    "32,000",
    "8000 tokens",
    "input is too long",
    "exceeds the maximum input",
)
PERMANENT_SIGNATURES = (
    "auth",
    "unauthorized",
    "forbidden",
    "validation",
    "permission denied",
    "api key not valid",
)
TRANSIENT_SIGNATURES = (
    "timeout",
    "timed out",
    "econnrefused",
    "econnreset",
    "etimedout",
    "connection reset",
    "connection refused",
    "network",
    "throttl",
    "rate exceeded",
    "too many requests",
    "service unavailable",
)

TRANSIENT_AWS_CODES = frozenset({
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceUnavailableException",
    "InternalServerException",
    "RequestTimeout",
    "SlowDown",
})
PERMANENT_AWS_CODES = frozenset({
    "AccessDeniedException",
    "UnauthorizedException",
    "UnrecognizedClientException",
    "ExpiredTokenException",
    "ValidationException",
    "NotFoundException",
})

_ERRORS_BY_KIND: dict[VectorErrorKind, type[VectorIndexError]] = {
    VectorErrorKind.TRANSIENT: VectorIndexTransientError,
    VectorErrorKind.PERMANENT: VectorIndexPermanentError,
    VectorErrorKind.CHUNK_TOO_LARGE: ChunkTooLargeError,
    VectorErrorKind.NOT_CONNECTED: VectorIndexNotConnectedError,
}


def classify_error(error: BaseException) -> VectorErrorKind:
    """
    Map a backend exception to a VectorErrorKind.

    Args:
        error: Exception raised by the vector backend or embedding API

    Returns:
        VectorErrorKind; unknown failures are PERMANENT
    """
    if isinstance(error, VectorIndexError):
        return error.kind

    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        if code in TRANSIENT_AWS_CODES:
            return VectorErrorKind.TRANSIENT
        if code in PERMANENT_AWS_CODES:
            message = str(error).lower()
            if any(sig in message for sig in CHUNK_TOO_LARGE_SIGNATURES):
                return VectorErrorKind.CHUNK_TOO_LARGE
            return VectorErrorKind.PERMANENT

    if isinstance(error, (TimeoutError, ConnectionError)):
        return VectorErrorKind.TRANSIENT

    message = str(error).lower()
    if any(sig in message for sig in CHUNK_TOO_LARGE_SIGNATURES):
        return VectorErrorKind.CHUNK_TOO_LARGE
    if any(sig in message for sig in PERMANENT_SIGNATURES):
        return VectorErrorKind.PERMANENT
    if any(sig in message for sig in TRANSIENT_SIGNATURES):
        return VectorErrorKind.TRANSIENT
    return VectorErrorKind.PERMANENT


def to_vector_error(error: BaseException, operation: str) -> VectorIndexError:
    """Wrap a backend exception in the VectorIndexError subclass for its kind."""
    if isinstance(error, VectorIndexError):
        return error
    kind = classify_error(error)
    return _ERRORS_BY_KIND[kind](
        f"Vector {operation} failed: {error}",
        operation=operation,
        details={"error_type": type(error).__name__},
    )


async def call_with_retry(
    operation: str,
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> T:
    """
    Run a vector operation, retrying transient failures.

    Delays start at base_delay and double on every retry, capped at
    max_delay.

    Args:
        operation: Operation name used in errors and logs
        func: Zero-argument coroutine function performing the call
        max_attempts: Total attempts including the first
        base_delay: First backoff delay in seconds
        max_delay: Cap for a single delay in seconds

    Returns:
        Whatever func returns

    Raises:
        VectorIndexTransientError: Transient failures exhausted max_attempts
        VectorIndexError: Any non-transient failure, raised on first occurrence
    """

    async def _attempt() -> T:
        try:
            return await func()
        except VectorIndexError:
            raise
        except Exception as e:
            raise to_vector_error(e, operation) from e

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception_type(VectorIndexTransientError),
        before_sleep=lambda retry_state: logger.warning(
            f"{__name__}:call_with_retry - {operation} retry "
            f"{retry_state.attempt_number}/{max_attempts} after transient error: "
            f"{retry_state.outcome.exception()}"
        ),
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await _attempt()
    except RetryError as e:
        last_error = e.last_attempt.exception()
        logger.error(
            f"{__name__}:call_with_retry - {operation} failed after {max_attempts} attempts",
            extra={"operation": operation, "attempts": max_attempts},
        )
        raise VectorIndexTransientError(
            f"Vector {operation} failed after {max_attempts} attempts: {last_error}",
            operation=operation,
            attempts=max_attempts,
        ) from last_error
