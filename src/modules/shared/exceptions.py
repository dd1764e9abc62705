"""
Domain exceptions for Questline.

Purpose
-------
Define the structured, domain-specific exception hierarchy for quest and
progression logic. These exceptions are raised by services for business rule
violations and user-facing errors. The completion orchestrator translates
them into typed results; the command line translates them into messages.

Design Notes
------------
- All domain exceptions inherit from `QuestlineDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.core.exceptions import ErrorSeverity


class QuestlineDomainException(Exception):
    """
    Base exception for all Questline domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise QuestlineDomainException(
        ...     "Quest unavailable",
        ...     {"quest_id": "daily-2025-01-01-web-developer-0"}
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


class NotFoundError(QuestlineDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "User", "Quest")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={
                "resource_type": resource_type,
                "identifier": identifier,
            },
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class UserNotFoundError(NotFoundError):
    """
    Raised when no progression record exists for an identity.

    The user should sign in again so the record is created; retrying the same
    call will not help.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__("User", user_id)
        self.message = (
            f"No progression record for user {user_id}; please sign in again"
        )


class QuestNotFoundError(NotFoundError):
    """Raised when a quest id is not in the quest catalog."""

    def __init__(self, quest_id: str) -> None:
        self.quest_id = quest_id
        super().__init__("Quest", quest_id)


class QuestExpiredError(QuestlineDomainException):
    """
    Raised when a quest is completed after its expiry instant.

    Args:
        quest_id: Quest that expired
        expires_at: ISO-8601 expiry instant
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, quest_id: str, expires_at: str) -> None:
        self.quest_id = quest_id
        self.expires_at = expires_at
        super().__init__(
            f"Quest {quest_id} expired at {expires_at}",
            details={"quest_id": quest_id, "expires_at": expires_at},
            error_code="QUEST_EXPIRED",
        )


class ValidationError(QuestlineDomainException):
    """
    Raised when input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={
                "field": field,
                "validation_message": message,
            },
            error_code=f"VALIDATION_{field.upper()}",
        )


class CompletionAlreadyRecordedError(QuestlineDomainException):
    """
    Raised when a completion ledger entry already exists for (user, quest).

    Distinct from a store failure: the write was refused because the quest
    has already been rewarded, not because the store misbehaved.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, user_id: str, quest_id: str) -> None:
        self.user_id = user_id
        self.quest_id = quest_id
        super().__init__(
            f"Quest {quest_id} already completed by {user_id}",
            details={"user_id": user_id, "quest_id": quest_id},
            error_code="COMPLETION_ALREADY_RECORDED",
        )
