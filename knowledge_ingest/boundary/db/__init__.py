"""
Relational document registry.

Exports:
  - get_async_engine, get_async_session_factory, transaction
  - create_tables, drop_tables
"""

from knowledge_ingest.boundary.db.connection import (
    get_async_engine,
    get_async_session_factory,
    transaction,
)
from knowledge_ingest.boundary.db.create_tables import create_tables, drop_tables

__all__ = [
    "create_tables",
    "drop_tables",
    "get_async_engine",
    "get_async_session_factory",
    "transaction",
]
