"""
Questline Logging Infrastructure

Exports the structured logging setup and the per-task log context.
"""

from src.core.logging.logger import (
    LogContext,
    get_log_context,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "LogContext",
    "get_log_context",
]
