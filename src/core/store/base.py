"""
Document store interface.

Purpose
-------
The quest progression core depends on a keyed document store with three
point operations plus an atomic transaction. Nothing in the core issues
queries across collections; every access is a lookup by ``(collection, key)``.

Operations
----------
- ``get_record(collection, key) -> dict | None``
- ``create_record(collection, key, fields) -> CreateResult``: atomic
  create-if-absent. An existing record yields ``ALREADY_EXISTS`` and is left
  untouched.
- ``update_record(collection, key, fields)``: merges ``fields`` into an
  existing record; raises ``StoreError(cause=NOT_FOUND)`` if it is missing.
- ``transaction()``: async context manager yielding a ``StoreTransaction``
  exposing the same operations. Writes become visible only when the block
  exits normally; any exception rolls every write back.

Failures are raised as ``StoreError`` with a ``StoreFailureCause`` so callers
never see driver-specific errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncContextManager, Dict, Optional


class CreateResult(str, Enum):
    """Outcome of a create-if-absent."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class RecordReader(ABC):
    """Read access to keyed records."""

    @abstractmethod
    async def get_record(
        self, collection: str, key: str, for_update: bool = False
    ) -> Optional[Dict[str, Any]]:
        """
        Point lookup. Returns a copy of the record's fields, or None.

        ``for_update`` locks the record until the enclosing transaction ends;
        it is ignored outside a transaction.
        """


class RecordWriter(RecordReader):
    """Read/write access to keyed records."""

    @abstractmethod
    async def create_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> CreateResult:
        """Create the record unless one already exists at this key."""

    @abstractmethod
    async def update_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> None:
        """Merge fields into an existing record."""


class StoreTransaction(RecordWriter):
    """Operations bound to one atomic transaction."""


class DocumentStore(RecordWriter):
    """A document store backend."""

    name: str = "document_store"

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StoreTransaction]:
        """Open an atomic transaction."""

    async def initialize(self) -> None:
        """Prepare the backend (connections, schema). Default: nothing."""

    async def shutdown(self) -> None:
        """Release backend resources. Default: nothing."""

    async def health_check(self) -> bool:
        return True
