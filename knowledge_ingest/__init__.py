"""
Knowledge ingestion core.

Content-addressed document ingestion into a vector index backed by a
relational document registry: hashing, chunking, retrying vector
operations, race-safe URL replacement, bounded batch fan-out and orphan
reconciliation.
"""

__version__ = "0.1.0"
