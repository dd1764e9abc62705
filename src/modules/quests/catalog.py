"""
Quest template catalog.

Templates are configuration (``quests.catalog`` in ``config/quests/``), one
list per career and cadence. Careers without templates fall back to
``quests.default_career``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping

from src.core.exceptions import ConfigurationError
from src.core.logging.logger import get_logger
from src.domain.models.quest import QuestCadence

if TYPE_CHECKING:
    from src.core.config.manager import ConfigManager

logger = get_logger(__name__)

DEFAULT_CAREER = "Full Stack Developer"
EXPERIENCE_LEVELS = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True)
class QuestTemplate:
    title: str
    description: str
    xp_reward: int
    difficulty: str
    level: int

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> "QuestTemplate":
        xp_reward = raw.get("xp_reward")
        level = raw.get("level", 0)
        if isinstance(xp_reward, bool) or not isinstance(xp_reward, int) or xp_reward <= 0:
            raise ConfigurationError(
                "quests.catalog", f"template {raw.get('title')!r} has invalid xp_reward"
            )
        if isinstance(level, bool) or not isinstance(level, int) or level < 0:
            raise ConfigurationError(
                "quests.catalog", f"template {raw.get('title')!r} has invalid level"
            )
        return cls(
            title=str(raw["title"]),
            description=str(raw.get("description", "")),
            xp_reward=xp_reward,
            difficulty=str(raw.get("difficulty", "beginner")),
            level=level,
        )

    def is_eligible(self, user_level: int, experience: str) -> bool:
        """Up to one level above the user; beginners see every difficulty."""
        return self.level <= user_level + 1 and (
            self.difficulty == experience or experience == "beginner"
        )


class QuestCatalog:
    """
    Read-only view over the configured templates.

    Example:
        >>> catalog = QuestCatalog(ConfigManager)
        >>> catalog.resolve_career("Astronaut")
        'Full Stack Developer'
    """

    def __init__(self, config_manager: type[ConfigManager] | ConfigManager) -> None:
        raw = config_manager.get("quests.catalog", {}) or {}
        self.default_career = config_manager.get("quests.default_career", DEFAULT_CAREER)

        self._templates: Dict[str, Dict[QuestCadence, List[QuestTemplate]]] = {}
        for career, cadences in raw.items():
            self._templates[career] = {
                cadence: [
                    QuestTemplate.from_config(item)
                    for item in (cadences or {}).get(cadence.value, []) or []
                ]
                for cadence in QuestCadence
            }

        if self.default_career not in self._templates:
            raise ConfigurationError(
                "quests.default_career",
                f"default career {self.default_career!r} has no templates",
            )

        logger.debug(
            "Quest catalog loaded",
            extra={"careers": len(self._templates), "default_career": self.default_career},
        )

    def careers(self) -> List[str]:
        return sorted(self._templates)

    def resolve_career(self, career: str) -> str:
        if career in self._templates:
            return career
        logger.info(
            "Unknown career, using default catalog",
            extra={"career": career, "default_career": self.default_career},
        )
        return self.default_career

    def templates(self, career: str, cadence: QuestCadence) -> List[QuestTemplate]:
        return list(self._templates[self.resolve_career(career)][cadence])

    def eligible_templates(
        self,
        career: str,
        cadence: QuestCadence,
        user_level: int,
        experience: str = "beginner",
    ) -> List[QuestTemplate]:
        return [
            template
            for template in self.templates(career, cadence)
            if template.is_eligible(user_level, experience)
        ]
