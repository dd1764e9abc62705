"""
Base domain model primitives for Questline.

Purpose
-------
Provide the shared building blocks for domain value objects: domain events
published after a state change, and the validation helpers value objects use
to enforce their invariants at construction time.

Non-Responsibilities
--------------------
- Persistence (handled by the document store)
- Service orchestration (handled by the service layer)

Design Notes
------------
Domain value objects are frozen dataclasses that validate themselves in
``__post_init__`` and convert to and from plain store records. Services never
hand raw dictionaries to one another.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass(frozen=True)
class DomainEvent:
    """
    Represents a domain event that has occurred.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "progression.leveled_up")
    payload : Dict[str, Any]
        Event payload with relevant data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# DOMAIN MODEL VALIDATION
# ============================================================================


class DomainValidationError(Exception):
    """
    Exception raised when domain model validation fails.

    This is the base exception for all business rule violations
    in domain models.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def _require_int(value: Any, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise DomainValidationError(
            f"{field_name} must be an integer, got {type(value).__name__}",
            field=field_name,
        )


def validate_positive(value: int, field_name: str) -> None:
    """
    Validate that a value is a positive integer.

    Raises
    ------
    DomainValidationError
        If value is not an int or not positive
    """
    _require_int(value, field_name)
    if value <= 0:
        raise DomainValidationError(
            f"{field_name} must be positive, got {value}",
            field=field_name,
        )


def validate_non_negative(value: int, field_name: str) -> None:
    """
    Validate that a value is a non-negative integer.

    Raises
    ------
    DomainValidationError
        If value is not an int or is negative
    """
    _require_int(value, field_name)
    if value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value}",
            field=field_name,
        )


def validate_not_empty(value: str, field_name: str) -> None:
    """
    Validate that a string is not empty.

    Raises
    ------
    DomainValidationError
        If value is empty or whitespace-only
    """
    if not value or not value.strip():
        raise DomainValidationError(
            f"{field_name} cannot be empty",
            field=field_name,
        )


# ============================================================================
# TIMESTAMP HELPERS
# ============================================================================


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime for a store record."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
