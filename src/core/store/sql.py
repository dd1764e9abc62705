"""
SQL document store (SQLAlchemy async).

Records live in the ``documents`` table keyed by ``(collection, key)``.

Atomicity
---------
- ``create_record`` is ``INSERT ... ON CONFLICT DO NOTHING``; a rowcount of
  zero means the record already existed.
- ``get_record(..., for_update=True)`` inside a transaction issues
  ``SELECT ... FOR UPDATE`` so concurrent writers of the same record queue
  behind each other (PostgreSQL). SQLite has no row locks and serializes
  writers on the database file instead.
- ``transaction()`` wraps ``DatabaseService.get_transaction()``: commit on a
  clean exit, rollback on any exception.

Error Mapping
-------------
Driver errors never escape; they become ``StoreError`` with a
``StoreFailureCause``:

- circuit open, OperationalError, InterfaceError, uninitialized service
  -> UNAVAILABLE
- insufficient privilege (SQLSTATE 42501) -> PERMISSION_DENIED
- IntegrityError -> CONFLICT
- anything else from SQLAlchemy -> UNKNOWN
"""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.config import Config
from src.core.database.circuit_breaker import CircuitBreakerOpenError
from src.core.database.service import (
    DatabaseNotInitializedError,
    DatabaseService,
)
from src.core.exceptions import StoreError, StoreFailureCause
from src.core.logging.logger import get_logger
from src.core.store.base import CreateResult, DocumentStore, StoreTransaction
from src.database.models.document import Document

logger = get_logger(__name__)

_PERMISSION_SQLSTATES = {"42501"}


def classify_error(exc: BaseException) -> StoreFailureCause:
    """Map a driver/infrastructure exception to a store failure cause."""
    if isinstance(exc, (CircuitBreakerOpenError, DatabaseNotInitializedError)):
        return StoreFailureCause.UNAVAILABLE

    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _PERMISSION_SQLSTATES or "permission denied" in str(exc).lower():
        return StoreFailureCause.PERMISSION_DENIED

    if isinstance(exc, IntegrityError):
        return StoreFailureCause.CONFLICT
    if isinstance(exc, (OperationalError, InterfaceError)):
        return StoreFailureCause.UNAVAILABLE
    return StoreFailureCause.UNKNOWN


def _wrap(
    operation: str,
    exc: BaseException,
    collection: Optional[str] = None,
    key: Optional[str] = None,
) -> StoreError:
    cause = classify_error(exc)
    logger.warning(
        "Store operation failed",
        extra={
            "store_operation": operation,
            "cause": cause.value,
            "collection": collection,
            "key": key,
            "error_type": type(exc).__name__,
        },
    )
    return StoreError(operation, cause, collection=collection, key=key, original_error=exc)


_STORE_FAILURES = (
    SQLAlchemyError,
    CircuitBreakerOpenError,
    DatabaseNotInitializedError,
)


def _insert_if_absent(dialect_name: str, values: Dict[str, Any]):
    if dialect_name == "postgresql":
        stmt = postgresql.insert(Document).values(**values)
    elif dialect_name == "sqlite":
        stmt = sqlite.insert(Document).values(**values)
    else:
        return None
    return stmt.on_conflict_do_nothing(index_elements=["collection", "key"])


async def _create(
    session: AsyncSession, collection: str, key: str, fields: Dict[str, Any]
) -> CreateResult:
    values = {"collection": collection, "key": key, "data": copy.deepcopy(fields), "version": 1}
    stmt = _insert_if_absent(session.bind.dialect.name, values)

    if stmt is not None:
        result = await session.execute(stmt)
        return CreateResult.CREATED if result.rowcount == 1 else CreateResult.ALREADY_EXISTS

    # Dialects without ON CONFLICT: insert under a savepoint so a duplicate
    # does not poison the enclosing transaction.
    try:
        async with session.begin_nested():
            session.add(Document(**values))
    except IntegrityError:
        return CreateResult.ALREADY_EXISTS
    return CreateResult.CREATED


async def _update(
    session: AsyncSession, collection: str, key: str, fields: Dict[str, Any]
) -> None:
    document = await session.get(Document, (collection, key), with_for_update=True)
    if document is None:
        raise StoreError(
            "update_record",
            StoreFailureCause.NOT_FOUND,
            collection=collection,
            key=key,
        )
    document.data = {**document.data, **copy.deepcopy(fields)}
    document.version = document.version + 1
    await session.flush()


class SqlTransaction(StoreTransaction):
    """Store operations bound to one SQLAlchemy session/transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_record(
        self, collection: str, key: str, for_update: bool = False
    ) -> Optional[Dict[str, Any]]:
        try:
            document = await self._session.get(
                Document,
                (collection, key),
                with_for_update=for_update,
                populate_existing=for_update,
            )
        except _STORE_FAILURES as exc:
            raise _wrap("get_record", exc, collection, key) from exc
        return copy.deepcopy(document.data) if document is not None else None

    async def create_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> CreateResult:
        try:
            return await _create(self._session, collection, key, fields)
        except _STORE_FAILURES as exc:
            raise _wrap("create_record", exc, collection, key) from exc

    async def update_record(
        self, collection: str, key: str, fields: Dict[str, Any]
    ) -> None:
        try:
            await _update(self._session, collection, key, fields)
        except _STORE_FAILURES as exc:
            raise _wrap("update_record", exc, collection, key) from exc


class SqlDocumentStore(DocumentStore):
    """
    Document store backed by the ``documents`` table.

    Example
    -------
    >>> store = SqlDocumentStore("sqlite+aiosqlite:///./questline.db")
    >>> await store.initialize()
    >>> await store.create_record("users", "user_000001", {"xp": 0, "level": 0})
    """

    name = "sql"

    def __init__(
        self,
        database_url: Optional[str] = None,
        create_schema: Optional[bool] = None,
    ) -> None:
        self._database_url = database_url
        self._create_schema = (
            Config.DATABASE_CREATE_SCHEMA if create_schema is None else create_schema
        )

    async def initialize(self) -> None:
        await DatabaseService.initialize(self._database_url)
        if self._create_schema:
            await DatabaseService.create_schema()

    async def shutdown(self) -> None:
        await DatabaseService.shutdown()

    async def health_check(self) -> bool:
        return await DatabaseService.health_check()

    async def get_record(
        self, collection: str, key: str, for_update: bool = False
    ) -> Optional[Dict[str, Any]]:
        try:
            async with DatabaseService.get_session() as session:
                document = await session.get(Document, (collection, key))
                return copy.deepcopy(document.data) if document is not None else None
        except _STORE_FAILURES as exc:
            raise _wrap("get_record", exc, collection, key) from exc

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

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[SqlTransaction, None]:
        """
        Atomic transaction. Failures opening or committing the transaction
        surface as ``StoreError(operation="transaction")``.
        """
        try:
            async with DatabaseService.get_transaction() as session:
                yield SqlTransaction(session)
        except _STORE_FAILURES as exc:
            raise _wrap("transaction", exc) from exc
