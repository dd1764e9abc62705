"""
Database infrastructure for Questline.

- ``DatabaseService``: async engine, sessions and transactions
- ``CircuitBreaker``: fail-fast when the database is unavailable
- ``Base`` / ``TimestampMixin``: declarative ORM foundation
"""

from src.core.database.base import Base, TimestampMixin
from src.core.database.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
