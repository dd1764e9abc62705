"""
Infrastructure exceptions for Questline.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
document store failures, configuration errors, cache failures and ledger
anomalies that require technical attention.

Design Notes
------------
- All infrastructure exceptions inherit from `QuestlineInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- `StoreError` classifies every store failure into a `StoreFailureCause` so
  callers never interpret driver-specific error codes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class QuestlineInfrastructureException(Exception):
    """
    Base exception for all Questline infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise QuestlineInfrastructureException(
        ...     "Store connection failed",
        ...     {"backend": "sql"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(QuestlineInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class StoreFailureCause(Enum):
    """Driver-independent classification of document store failures."""

    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


_RETRYABLE_CAUSES = {StoreFailureCause.UNAVAILABLE, StoreFailureCause.CONFLICT}


class StoreError(QuestlineInfrastructureException):
    """
    Raised when a document store operation fails.

    Args:
        operation: Store operation that failed (e.g. "update_record")
        cause: Classified failure cause
        collection: Collection involved
        key: Record key involved
        original_error: The underlying driver exception, if any

    Example:
        >>> raise StoreError(
        ...     "update_record", StoreFailureCause.NOT_FOUND,
        ...     collection="users", key="user_000001",
        ... )
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR

    def __init__(
        self,
        operation: str,
        cause: StoreFailureCause,
        collection: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        self.cause = cause
        self.collection = collection
        self.key = key
        self.original_error = original_error

        target = f" {collection}/{key}" if collection else ""
        reason = f": {original_error}" if original_error else ""
        super().__init__(
            f"Store {operation} failed{target} ({cause.value}){reason}",
            details={
                "operation": operation,
                "cause": cause.value,
                "collection": collection,
                "key": key,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            is_retryable=cause in _RETRYABLE_CAUSES,
            error_code="STORE_ERROR",
        )


class LedgerWriteFailedError(QuestlineInfrastructureException):
    """
    Raised when the completion ledger entry cannot be written.

    Because the ledger write shares a transaction with the XP update, raising
    this rolls the XP update back as well.
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(
        self, user_id: str, quest_id: str, original_error: StoreError
    ) -> None:
        self.user_id = user_id
        self.quest_id = quest_id
        self.original_error = original_error
        super().__init__(
            f"Completion ledger write failed for {user_id}/{quest_id}: "
            f"{original_error.message}",
            details={
                "user_id": user_id,
                "quest_id": quest_id,
                "cause": original_error.cause.value,
            },
            is_retryable=original_error.is_retryable,
            error_code="LEDGER_WRITE_FAILED",
        )


class RedisConnectionError(QuestlineInfrastructureException):
    """
    Raised when Redis connection or operations fail.

    Args:
        operation: Description of the Redis operation that failed
        original_error: The underlying Redis exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Redis error during {operation}: {original_error}",
            details={
                "operation": operation,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="REDIS_ERROR",
        )
