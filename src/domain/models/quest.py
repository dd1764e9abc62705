"""
Quest domain models for Questline.

A ``Quest`` is issued from a catalog template onto a quest board and is
immutable afterwards. ``QuestBoard`` records which quests were issued for a
given career, cadence and period so board generation can be repeated safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from src.domain.models.base import (
    DomainValidationError,
    from_iso,
    to_iso,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
)

QUESTS_COLLECTION = "quests"
BOARDS_COLLECTION = "quest_boards"


class QuestCadence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class Quest:
    """An issued quest."""

    quest_id: str
    title: str
    description: str
    xp_reward: int
    career: str
    level: int
    difficulty: str
    cadence: QuestCadence
    issued_at: datetime
    expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.quest_id, "quest_id")
        validate_not_empty(self.title, "title")
        validate_positive(self.xp_reward, "xp_reward")
        validate_non_negative(self.level, "level")
        if self.expires_at is not None and self.expires_at <= self.issued_at:
            raise DomainValidationError(
                "expires_at must be after issued_at", field="expires_at"
            )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @classmethod
    def from_record(cls, quest_id: str, record: Dict[str, Any]) -> "Quest":
        return cls(
            quest_id=quest_id,
            title=record["title"],
            description=record.get("description", ""),
            xp_reward=record["xp_reward"],
            career=record["career"],
            level=record.get("level", 0),
            difficulty=record.get("difficulty", "beginner"),
            cadence=QuestCadence(record["cadence"]),
            issued_at=from_iso(record["issued_at"]),
            expires_at=from_iso(record.get("expires_at")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "xp_reward": self.xp_reward,
            "career": self.career,
            "level": self.level,
            "difficulty": self.difficulty,
            "cadence": self.cadence.value,
            "issued_at": to_iso(self.issued_at),
            "expires_at": to_iso(self.expires_at),
        }


@dataclass(frozen=True)
class QuestBoard:
    """The quests issued for one (career, cadence, period)."""

    career: str
    cadence: QuestCadence
    period: str
    quest_ids: Tuple[str, ...]
    generated_at: datetime

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "QuestBoard":
        return cls(
            career=record["career"],
            cadence=QuestCadence(record["cadence"]),
            period=record["period"],
            quest_ids=tuple(record.get("quest_ids", [])),
            generated_at=from_iso(record["generated_at"]),
        )

    def to_record(self) -> Dict[str, Any]:
        quest_ids: List[str] = list(self.quest_ids)
        return {
            "career": self.career,
            "cadence": self.cadence.value,
            "period": self.period,
            "quest_ids": quest_ids,
            "generated_at": to_iso(self.generated_at),
        }
