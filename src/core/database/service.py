"""
Database Service - Core Infrastructure Layer

Purpose
-------
Centralized async database engine and session management for the SQL
document store. Provides atomic transactions, pessimistic locking, health
checks and circuit-breaker fail-fast behavior.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance with connection pooling
- Provide async context managers for read sessions and atomic transactions
- Enforce transaction discipline: automatic commit on success, rollback on
  exception
- Configure statement timeouts for PostgreSQL connections
- Create the schema for local runs and tests

Non-Responsibilities
--------------------
- Mapping driver errors to store failure causes (SqlDocumentStore)
- Domain logic or business rules

Architecture Notes
------------------
**Transaction Model**:
- `get_transaction()` is the interface for all state mutations
- Automatic commit on success, rollback on any exception
- Never manually call `session.commit()` inside store code
- Use pessimistic locks: `await session.get(Model, pk, with_for_update=True)`

**Circuit Breaker**:
- Driver-level failures (OperationalError, DBAPIError, StoreError with cause
  UNAVAILABLE) count towards opening the circuit
- Domain exceptions and logical store errors (NOT_FOUND, CONFLICT, ledger
  anomalies) roll the transaction back without counting as database failures

Configuration
-------------
- DATABASE_URL (e.g. ``postgresql+asyncpg://...`` or ``sqlite+aiosqlite:///...``)
- DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW, DATABASE_POOL_RECYCLE,
  DATABASE_POOL_TIMEOUT, DATABASE_STATEMENT_TIMEOUT_MS, DATABASE_ECHO

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
...     doc = await session.get(Document, ("users", user_id), with_for_update=True)
...     doc.data = {**doc.data, "xp": 330}
...     # Automatic commit on exit
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool

from src.core.config.config import Config
from src.core.database.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from src.core.exceptions import LedgerWriteFailedError, StoreError, StoreFailureCause
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Exceptions
# ============================================================================


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


def _is_database_failure(exc: BaseException) -> bool:
    """True for failures that say the database itself is unhealthy."""
    if isinstance(exc, LedgerWriteFailedError):
        exc = exc.original_error
    if isinstance(exc, (OperationalError, DBAPIError)):
        return True
    return isinstance(exc, StoreError) and exc.cause is StoreFailureCause.UNAVAILABLE


# ============================================================================
# Configuration Snapshot
# ============================================================================


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """
    Immutable snapshot of database configuration for the engine's lifetime.
    """

    url: str
    echo: bool
    pool_class: Optional[Type[Pool]]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


# ============================================================================
# DatabaseService
# ============================================================================


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    **Lifecycle**:
    - initialize() -> Initialize engine and session factory
    - create_schema() -> Create all registered tables
    - shutdown() -> Dispose engine and cleanup resources

    **Session Management**:
    - get_session() -> Reads without automatic commit
    - get_transaction() -> Atomic write transaction (preferred)

    **Utilities**:
    - health_check() -> Fast database reachability check
    - get_circuit_breaker_metrics() -> Circuit breaker state and counters
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _circuit_breaker: Optional[CircuitBreaker] = None

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _build_config_snapshot(
        cls, database_url: Optional[str] = None
    ) -> _DatabaseConfigSnapshot:
        """
        Build an immutable configuration snapshot from Config.

        Raises
        ------
        DatabaseInitializationError
            If DATABASE_URL is missing or invalid.
        """
        url = database_url or Config.DATABASE_URL
        if not url or not isinstance(url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        # SQLite connections are cheap and file-locked; pooling buys nothing
        # and NullPool keeps test event loops independent.
        pool_class: Optional[Type[Pool]] = (
            NullPool if (Config.is_testing() or url.startswith("sqlite")) else None
        )

        snapshot = _DatabaseConfigSnapshot(
            url=url,
            echo=Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "pool_class": pool_class.__name__ if pool_class else "default",
                "pool_size": snapshot.pool_size,
                "max_overflow": snapshot.max_overflow,
            },
        )

        return snapshot

    @classmethod
    async def initialize(cls, database_url: Optional[str] = None) -> None:
        """
        Initialize the database engine and session factory (idempotent).

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            logger.info("Initializing DatabaseService")

            try:
                config = cls._build_config_snapshot(database_url)

                engine_kwargs: dict[str, Any] = {"echo": config.echo}
                if config.pool_class is not None:
                    engine_kwargs["poolclass"] = config.pool_class
                else:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                            "pool_pre_ping": True,
                        }
                    )

                cls._engine = create_async_engine(config.url, **engine_kwargs)
                cls._session_factory = async_sessionmaker(
                    bind=cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                cls._config_snapshot = config
                cls._circuit_breaker = CircuitBreaker()

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={"url_scheme": config.url_scheme},
                )

            except DatabaseInitializationError:
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    @classmethod
    async def create_schema(cls) -> None:
        """Create every table registered on the declarative Base."""
        cls._ensure_initialized()
        assert cls._engine is not None

        from src.database.models import Base

        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Database schema ensured",
            extra={"tables": sorted(Base.metadata.tables.keys())},
        )

    @classmethod
    async def shutdown(cls) -> None:
        """
        Dispose the engine and reset internal state. Safe to call repeatedly.
        """
        async with cls._init_lock:
            if cls._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")
            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None
                cls._circuit_breaker = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """
        Execute ``SELECT 1``. Returns False instead of raising on failure.
        """
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        finally:
            logger.debug(
                "Database health check completed",
                extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None or cls._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )

    @classmethod
    async def _apply_statement_timeout(cls, session: AsyncSession) -> None:
        config = cls._config_snapshot
        if config is not None and config.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {config.statement_timeout_ms}")
            )

    @classmethod
    async def _check_circuit(cls) -> None:
        assert cls._circuit_breaker is not None
        if not await cls._circuit_breaker.allow_request():
            logger.warning("Database request rejected by circuit breaker (fail-fast)")
            raise CircuitBreakerOpenError(
                "Database circuit breaker is open. "
                "The database may be unavailable or experiencing issues."
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session without automatic commit.

        Use for point reads; prefer `get_transaction()` for writes.

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        CircuitBreakerOpenError
            If the circuit is open.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None
        await cls._check_circuit()

        async with cls._session_factory() as session:
            try:
                await cls._apply_statement_timeout(session)
                yield session
                await cls._circuit_breaker.record_success()
            except (OperationalError, DBAPIError):
                await cls._circuit_breaker.record_failure()
                raise

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session wrapped in an atomic transaction.

        **On Success**: commits the transaction.

        **On Exception**: rolls back and re-raises the original exception.

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        CircuitBreakerOpenError
            If the circuit is open.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None
        await cls._check_circuit()
        breaker = cls._circuit_breaker
        assert breaker is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._apply_statement_timeout(session)
                logger.debug("Database transaction started")
                yield session

                await session.commit()
                await breaker.record_success()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except BaseException as exc:
                await session.rollback()
                duration_ms = (time.perf_counter() - start) * 1000.0
                if not _is_database_failure(exc):
                    # Domain outcomes, logical store errors (missing record,
                    # ledger conflict) and cancellation leave the breaker alone.
                    logger.debug(
                        "Transaction rolled back",
                        extra={"error_type": type(exc).__name__, "duration_ms": duration_ms},
                    )
                    raise

                await breaker.record_failure()
                logger.error(
                    f"{type(exc).__name__} in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": duration_ms,
                    },
                )
                raise

    # ========================================================================
    # Circuit Breaker Metrics
    # ========================================================================

    @classmethod
    def get_circuit_breaker_metrics(cls) -> dict[str, Any]:
        if cls._circuit_breaker is None:
            return {"state": "not_initialized"}

        cb_metrics = cls._circuit_breaker.get_metrics()
        return {
            "state": cb_metrics.state.value,
            "failure_count": cb_metrics.failure_count,
            "success_count": cb_metrics.success_count,
            "consecutive_failures": cb_metrics.consecutive_failures,
            "total_requests": cb_metrics.total_requests,
            "rejected_requests": cb_metrics.rejected_requests,
        }
