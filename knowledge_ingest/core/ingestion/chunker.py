"""
Boundary-aware text chunking with a size fallback ladder.

split_text cuts text into pieces of roughly target_size characters,
preferring (in order) paragraph breaks, sentence ends, clause
punctuation, newlines and any whitespace inside the window
[cursor + min_size, cursor + target_size]. Consecutive pieces share
overlap characters.

TextChunker walks CHUNKING_STRATEGIES from the largest tier down. When
the vector backend rejects a tier, the caller asks for the tiers below
it with skip_through.

Dependencies: re, knowledge_ingest.models.chunk
System role: Chunk production for the ingestion orchestrator
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from knowledge_ingest.core.exceptions import ChunkingExhaustedError, InvalidInputError
from knowledge_ingest.models.chunk import Chunk, make_chunk_id

logger = logging.getLogger(__name__)

# Highest priority first. Boundaries sit right after the match.
_BOUNDARY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\n[ \t]*\n"),
    re.compile(r"[.!?](?=\s)"),
    re.compile(r"[,;:](?=\s)"),
    re.compile(r"\n"),
    re.compile(r"\s"),
)

BASE_METADATA_KEYS = (
    "source_document_id",
    "source_document_name",
    "chunk_index",
    "chunk_length",
    "upload_source",
    "upload_time",
    "category",
)
PASSTHROUGH_METADATA_KEYS = (
    "source_url",
    "content_hash",
    "document_date",
    "chunking_strategy",
    "file_type",
    "language",
    "section",
)


@dataclass(frozen=True)
class ChunkingStrategy:
    """One rung of the fallback ladder."""

    name: str
    target_size: int
    min_size: int
    overlap: int


CHUNKING_STRATEGIES: tuple[ChunkingStrategy, ...] = (
    ChunkingStrategy("xlarge", 25000, 12000, 500),
    ChunkingStrategy("large", 15000, 8000, 400),
    ChunkingStrategy("medium", 8000, 4000, 300),
    ChunkingStrategy("small", 4000, 2000, 200),
    ChunkingStrategy("xsmall", 2000, 1000, 100),
    ChunkingStrategy("tiny", 1000, 500, 50),
)


@dataclass(frozen=True)
class ChunkSource:
    """Per-document values stamped into every chunk's metadata."""

    document_id: str
    document_name: str
    upload_source: str
    upload_time: datetime
    category: str
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class ChunkingResult:
    """Chunks produced by the first acceptable tier."""

    chunks: list[Chunk]
    strategy: ChunkingStrategy
    avg_chunk_size: int
    attempted: list[str] = field(default_factory=list)


def _find_boundary(text: str, lower: int, upper: int) -> int:
    """Best boundary b with lower <= b <= upper; upper itself when nothing matches."""
    search_end = min(upper + 1, len(text))
    for pattern in _BOUNDARY_PATTERNS:
        best = -1
        for match in pattern.finditer(text, lower, search_end):
            if match.end() > upper:
                break
            best = match.end()
        if best != -1:
            return best
    return upper


def split_text(text: str, target_size: int, min_size: int, overlap: int) -> list[str]:
    """
    Split text into trimmed pieces at readable boundaries.

    Args:
        text: Normalized text
        target_size: Largest piece before trimming
        min_size: Smallest distance between a piece start and its boundary
        overlap: Characters repeated at the start of the next piece

    Returns:
        Ordered non-empty pieces

    Raises:
        ValueError: Sizes violate 0 < min_size <= target_size, 0 <= overlap < min_size
    """
    if not 0 < min_size <= target_size:
        raise ValueError(f"Invalid sizes: min_size={min_size}, target_size={target_size}")
    if not 0 <= overlap < min_size:
        raise ValueError(f"Invalid overlap {overlap} for min_size={min_size}")

    length = len(text)
    if length <= min_size:
        piece = text.strip()
        return [piece] if piece else []

    pieces: list[str] = []
    cursor = 0
    while cursor < length:
        end = cursor + target_size
        if end >= length:
            piece = text[cursor:].strip()
            if piece:
                pieces.append(piece)
            break

        boundary = _find_boundary(text, cursor + min_size, end)
        piece = text[cursor:boundary].strip()
        if piece:
            pieces.append(piece)
        cursor = max(boundary - overlap, cursor + min_size)

    return pieces


class TextChunker:
    """
    Produces chunks for one document using the fallback ladder.

    Attributes:
        max_chunk_chars: Longest piece the embedding backend accepts
        max_metadata_keys: Maximum metadata keys per vector record
        strategies: Tiers from most generous to most conservative
    """

    def __init__(
        self,
        max_chunk_chars: int = 32000,
        max_metadata_keys: int = 16,
        strategies: Sequence[ChunkingStrategy] = CHUNKING_STRATEGIES,
    ) -> None:
        if not strategies:
            raise ValueError("At least one chunking strategy is required")
        self.max_chunk_chars = max_chunk_chars
        self.max_metadata_keys = max_metadata_keys
        self.strategies = tuple(strategies)

    def strategies_after(self, skip_through: str | None) -> tuple[ChunkingStrategy, ...]:
        """Tiers strictly smaller than skip_through (all tiers when None)."""
        if skip_through is None:
            return self.strategies
        names = [strategy.name for strategy in self.strategies]
        if skip_through not in names:
            raise ValueError(f"Unknown chunking strategy: {skip_through}")
        return self.strategies[names.index(skip_through) + 1:]

    def chunk_with_fallback(
        self,
        text: str,
        source: ChunkSource,
        skip_through: str | None = None,
    ) -> ChunkingResult:
        """
        Chunk text with the first tier whose pieces all fit the backend limit.

        Args:
            text: Normalized document text
            source: Document values for chunk metadata
            skip_through: Last tier already rejected; it and all larger tiers are skipped

        Returns:
            ChunkingResult

        Raises:
            InvalidInputError: Empty text
            ChunkingExhaustedError: No remaining tier produced usable chunks
        """
        if not text or not text.strip():
            raise InvalidInputError("Cannot chunk empty text", field="body")

        attempted: list[str] = []
        for strategy in self.strategies_after(skip_through):
            attempted.append(strategy.name)
            pieces = split_text(text, strategy.target_size, strategy.min_size, strategy.overlap)
            if not pieces:
                continue

            longest = max(len(piece) for piece in pieces)
            if longest > self.max_chunk_chars:
                logger.warning(
                    f"{__name__}:chunk_with_fallback - Strategy {strategy.name} produced a "
                    f"{longest}-char chunk, trying smaller",
                    extra={"document_id": source.document_id},
                )
                continue

            chunks = [
                Chunk(
                    id=make_chunk_id(source.document_id, index),
                    content=piece,
                    metadata=self.build_chunk_metadata(source, index, piece, strategy.name),
                )
                for index, piece in enumerate(pieces)
            ]
            avg_size = sum(len(piece) for piece in pieces) // len(pieces)
            logger.info(
                f"{__name__}:chunk_with_fallback - {len(chunks)} chunks with strategy {strategy.name}",
                extra={"document_id": source.document_id, "avg_chunk_size": avg_size},
            )
            return ChunkingResult(
                chunks=chunks,
                strategy=strategy,
                avg_chunk_size=avg_size,
                attempted=attempted,
            )

        raise ChunkingExhaustedError(
            "No chunking strategy produced chunks within backend limits",
            attempted_strategies=attempted,
            details={"document_id": source.document_id, "skip_through": skip_through},
        )

    def build_chunk_metadata(
        self,
        source: ChunkSource,
        index: int,
        content: str,
        strategy_name: str,
    ) -> dict[str, Any]:
        """
        Flat metadata for one chunk.

        Base keys always come first. Pass-through keys are copied from
        source.extra only when whitelisted, scalar and not None; the total
        never exceeds max_metadata_keys.
        """
        metadata: dict[str, Any] = {
            "source_document_id": source.document_id,
            "source_document_name": source.document_name,
            "chunk_index": index,
            "chunk_length": len(content),
            "upload_source": source.upload_source,
            "upload_time": source.upload_time.isoformat(),
            "category": source.category,
        }
        extra = {**source.extra, "chunking_strategy": strategy_name}
        for key in PASSTHROUGH_METADATA_KEYS:
            if len(metadata) >= self.max_metadata_keys:
                break
            value = extra.get(key)
            if isinstance(value, (str, int, float, bool)):
                metadata[key] = value
        return dict(list(metadata.items())[: self.max_metadata_keys])
