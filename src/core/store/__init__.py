"""
Document store collaborators.

- ``DocumentStore``: interface (point reads, create-if-absent, update,
  atomic transactions)
- ``MemoryDocumentStore``: in-process backend
- ``SqlDocumentStore``: SQLAlchemy async backend
- ``create_store``: build the backend selected by ``Config.STORE_BACKEND``
"""

from typing import Optional

from src.core.config.config import Config, StoreBackend
from src.core.store.base import (
    CreateResult,
    DocumentStore,
    RecordReader,
    RecordWriter,
    StoreTransaction,
)
from src.core.store.memory import MemoryDocumentStore


def create_store(backend: Optional[str] = None) -> DocumentStore:
    """Instantiate the configured document store backend."""
    selected = StoreBackend((backend or Config.STORE_BACKEND).lower())
    if selected is StoreBackend.SQL:
        from src.core.store.sql import SqlDocumentStore

        return SqlDocumentStore()
    return MemoryDocumentStore()


__all__ = [
    "CreateResult",
    "DocumentStore",
    "MemoryDocumentStore",
    "RecordReader",
    "RecordWriter",
    "StoreTransaction",
    "create_store",
]
