"""
Content normalization and fingerprinting.

Two bodies that differ only in line-ending style or surrounding
whitespace normalize to the same text and therefore the same hash,
which is what deduplication keys on.

Dependencies: hashlib
System role: Dedup and change-detection fingerprints
"""

import hashlib
import re

from knowledge_ingest.core.exceptions import InvalidInputError

_LINE_ENDINGS = re.compile(r"\r\n?")


def normalize_content(text: str) -> str:
    """
    Collapse CRLF/CR to LF and strip surrounding whitespace.

    Args:
        text: Raw text

    Returns:
        Normalized text, "" for non-string input
    """
    if not isinstance(text, str):
        return ""
    return _LINE_ENDINGS.sub("\n", text).strip()


def compute_hash(text: str) -> str:
    """
    SHA-256 hex digest of the UTF-8 bytes of text, as given.

    Raises:
        InvalidInputError: Empty or non-string input
    """
    if not isinstance(text, str) or not text:
        raise InvalidInputError("Content must be a non-empty string", field="body")
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_normalized_hash(text: str) -> str:
    """Hash of normalize_content(text)."""
    return compute_hash(normalize_content(text))


def compare_content(first: str, second: str) -> bool:
    """True when both bodies normalize to the same fingerprint. Invalid input never matches."""
    try:
        return compute_normalized_hash(first) == compute_normalized_hash(second)
    except InvalidInputError:
        return False


def compare_hash(content_hash: str, text: str) -> bool:
    """True when text normalizes to content_hash."""
    try:
        return compute_normalized_hash(text) == content_hash
    except InvalidInputError:
        return False
