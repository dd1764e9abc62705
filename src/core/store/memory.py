"""
In-process document store.

Used for local runs, the command line's default backend and tests.
Transactions are serialized by a single ``asyncio.Lock`` and stage their
writes in an overlay that is applied only on a clean exit, so a transaction
is all-or-nothing and concurrent transactions never interleave.

Writes outside a transaction take the same lock, so they never land in the
middle of another caller's transaction. Reads outside a transaction see the
last committed state.
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional, Tuple

from src.core.exceptions import StoreError, StoreFailureCause
from src.core.logging.logger import get_logger
from src.core.store.base import CreateResult, DocumentStore, StoreTransaction

logger = get_logger(__name__)

_Key = Tuple[str, str]


class MemoryTransaction(StoreTransaction):
    """Staged writes over a committed snapshot."""

    def __init__(self, store: "MemoryDocumentStore") -> None:
        self._store = store
        self._staged: Dict[_Key, Dict[str, Any]] = {}
        self._closed = False

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreError(operation, StoreFailureCause.UNKNOWN)

    def _current(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        staged = self._staged.get((collection, key))
        if staged is not None:
            return staged
        return self._store._committed(collection, key)

    async def get_record(
        self, collection: str, key: str, for_update: bool = False
    ) -> Optional[Dict[str, Any]]:
        self._ensure_open("get_record")
        record = self._current(collection, key)
        return copy.deepcopy(record) if record is not None else None

    async def create_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> CreateResult:
        self._ensure_open("create_record")
        if self._current(collection, key) is not None:
            return CreateResult.ALREADY_EXISTS
        self._staged[(collection, key)] = copy.deepcopy(fields)
        return CreateResult.CREATED

    async def update_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> None:
        self._ensure_open("update_record")
        current = self._current(collection, key)
        if current is None:
            raise StoreError(
                "update_record",
                StoreFailureCause.NOT_FOUND,
                collection=collection,
                key=key,
            )
        self._staged[(collection, key)] = {**current, **copy.deepcopy(fields)}

    def _commit(self) -> None:
        self._store._apply(self._staged)
        self._close()

    def _close(self) -> None:
        self._staged = {}
        self._closed = True


class MemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed document store.

    Example
    -------
    >>> store = MemoryDocumentStore()
    >>> async with store.transaction() as txn:
    ...     await txn.create_record("users", "user_000001", {"xp": 0, "level": 0})
    """

    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Committed state
    # ------------------------------------------------------------------

    def _committed(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        return self._data.get(collection, {}).get(key)

    def _apply(self, staged: Dict[_Key, Dict[str, Any]]) -> None:
        for (collection, key), fields in staged.items():
            self._data.setdefault(collection, {})[key] = fields

    # ------------------------------------------------------------------
    # Non-transactional operations
    # ------------------------------------------------------------------

    async def get_record(
        self, collection: str, key: str, for_update: bool = False
    ) -> Optional[Dict[str, Any]]:
        record = self._committed(collection, key)
        return copy.deepcopy(record) if record is not None else None

    async def create_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> CreateResult:
        async with self.transaction() as txn:
            return await txn.create_record(collection, key, fields)

    async def update_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> None:
        async with self.transaction() as txn:
            await txn.update_record(collection, key, fields)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[MemoryTransaction, None]:
        async with self._lock:
            txn = MemoryTransaction(self)
            try:
                yield txn
            except BaseException:
                logger.debug(
                    "Memory transaction rolled back",
                    extra={"staged_records": len(txn._staged)},
                )
                txn._close()
                raise
            txn._commit()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def count(self, collection: str) -> int:
        return len(self._data.get(collection, {}))

    def snapshot(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Deep copy of all committed data."""
        return copy.deepcopy(self._data)
