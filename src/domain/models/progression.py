"""
Progression domain models for Questline.

Purpose
-------
Immutable value objects for the two records the quest completion protocol
reads and writes:

- ``UserProgress``: the per-user XP/level record (collection ``users``)
- ``QuestCompletion``: the completion ledger entry proving a quest was
  rewarded exactly once (collection ``quest_completions``)

Both convert to and from plain store records with ISO-8601 timestamps, so
every document store backend persists them the same way.

Invariants
----------
- ``xp`` and ``level`` are non-negative integers.
- A completion's ``leveled_up`` agrees with ``level_after > level_before``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from src.domain.models.base import (
    DomainValidationError,
    from_iso,
    to_iso,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
)

USERS_COLLECTION = "users"
COMPLETIONS_COLLECTION = "quest_completions"


@dataclass(frozen=True)
class UserProgress:
    """
    A user's progression record.

    Only the completion orchestrator changes ``xp`` and ``level``; profile
    fields are carried through untouched.
    """

    user_id: str
    xp: int = 0
    level: int = 0
    name: Optional[str] = None
    career: Optional[str] = None
    created_at: Optional[datetime] = None
    last_quest_completed: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_non_negative(self.xp, "xp")
        validate_non_negative(self.level, "level")

    @classmethod
    def new(
        cls,
        user_id: str,
        now: datetime,
        name: Optional[str] = None,
        career: Optional[str] = None,
    ) -> "UserProgress":
        """Fresh record created at first authentication."""
        return cls(
            user_id=user_id,
            xp=0,
            level=0,
            name=name,
            career=career,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_record(cls, user_id: str, record: Dict[str, Any]) -> "UserProgress":
        return cls(
            user_id=user_id,
            xp=record.get("xp", 0),
            level=record.get("level", 0),
            name=record.get("name"),
            career=record.get("career"),
            created_at=from_iso(record.get("created_at")),
            last_quest_completed=record.get("last_quest_completed"),
            updated_at=from_iso(record.get("updated_at")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "xp": self.xp,
            "level": self.level,
            "name": self.name,
            "career": self.career,
            "created_at": to_iso(self.created_at),
            "last_quest_completed": self.last_quest_completed,
            "updated_at": to_iso(self.updated_at),
        }

    def with_progress(
        self, xp: int, level: int, quest_id: str, now: datetime
    ) -> "UserProgress":
        """Return a copy carrying a new XP/level after completing `quest_id`."""
        return replace(
            self,
            xp=xp,
            level=level,
            last_quest_completed=quest_id,
            updated_at=now,
        )

    def progress_fields(self) -> Dict[str, Any]:
        """The subset of fields written by a quest completion."""
        return {
            "xp": self.xp,
            "level": self.level,
            "last_quest_completed": self.last_quest_completed,
            "updated_at": to_iso(self.updated_at),
        }


@dataclass(frozen=True)
class QuestCompletion:
    """A completion ledger entry. Created once, never overwritten."""

    user_id: str
    quest_id: str
    xp_awarded: int
    level_before: int
    level_after: int
    leveled_up: bool
    completed_at: datetime

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_not_empty(self.quest_id, "quest_id")
        validate_positive(self.xp_awarded, "xp_awarded")
        validate_non_negative(self.level_before, "level_before")
        validate_non_negative(self.level_after, "level_after")
        if self.leveled_up != (self.level_after > self.level_before):
            raise DomainValidationError(
                "leveled_up must match level_after > level_before",
                field="leveled_up",
            )

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "QuestCompletion":
        return cls(
            user_id=record["user_id"],
            quest_id=record["quest_id"],
            xp_awarded=record["xp_awarded"],
            level_before=record["level_before"],
            level_after=record["level_after"],
            leveled_up=bool(record["leveled_up"]),
            completed_at=from_iso(record["completed_at"]),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "quest_id": self.quest_id,
            "xp_awarded": self.xp_awarded,
            "level_before": self.level_before,
            "level_after": self.level_after,
            "leveled_up": self.leveled_up,
            "completed_at": to_iso(self.completed_at),
        }
