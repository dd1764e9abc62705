"""
Core infrastructure layer for Questline.

- Configuration (Config, ConfigManager)
- Document stores (MemoryDocumentStore, SqlDocumentStore)
- Database subsystem (DatabaseService)
- Redis and the progress cache
- Event bus
- Logging
- Input validation
- Infrastructure exceptions

Feature modules import from the submodules directly; this package only
re-exports the most common primitives.
"""

from __future__ import annotations

from src.core.config import Config, ConfigManager
from src.core.exceptions import (
    ConfigurationError,
    ErrorSeverity,
    LedgerWriteFailedError,
    QuestlineInfrastructureException,
    RedisConnectionError,
    StoreError,
    StoreFailureCause,
)
from src.core.logging import get_logger, setup_logging
from src.core.validation import InputValidator

__all__ = [
    "Config",
    "ConfigManager",
    "setup_logging",
    "get_logger",
    "InputValidator",
    "QuestlineInfrastructureException",
    "ConfigurationError",
    "StoreError",
    "StoreFailureCause",
    "LedgerWriteFailedError",
    "RedisConnectionError",
    "ErrorSeverity",
]
