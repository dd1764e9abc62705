"""
Domain models package for Questline.

Domain models are immutable value objects that validate their own invariants
and convert to and from plain document store records. Services orchestrate
them; they never touch the store themselves.
"""

from .base import (
    DomainEvent,
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
)
from .progression import QuestCompletion, UserProgress
from .quest import Quest, QuestBoard, QuestCadence

__all__ = [
    "DomainEvent",
    "DomainValidationError",
    "validate_positive",
    "validate_non_negative",
    "validate_not_empty",
    "UserProgress",
    "QuestCompletion",
    "Quest",
    "QuestBoard",
    "QuestCadence",
]
