"""
Quest Board Service
===================

Purpose
-------
Issues daily and weekly quests from the template catalog, lists the quests
still open for a career, and completes catalog quests with their own reward.

Domain
------
- A board is the set of quests issued for one (career, cadence, period).
  Periods are the UTC date for daily boards and the UTC date of the week's
  Sunday for weekly boards.
- Generation is idempotent per board: the board record is created with
  create-if-absent in the same transaction as its quests, so concurrent or
  repeated generation issues one set.
- Daily quests expire after ``quests.daily.expires_after_hours`` (24),
  weekly after ``quests.weekly.expires_after_hours`` (168).
- Completing an unknown or expired quest fails at VALIDATING without
  touching progression.

Events
------
- ``quest.board_generated`` after a new board commits
"""

from __future__ import annotations

import random
import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, List, Optional

from src.core.exceptions import StoreError
from src.core.store.base import CreateResult
from src.core.validation.input_validator import InputValidator
from src.domain.models.base import to_iso, utc_now
from src.domain.models.quest import (
    BOARDS_COLLECTION,
    QUESTS_COLLECTION,
    Quest,
    QuestBoard,
    QuestCadence,
)
from src.modules.quests.catalog import EXPERIENCE_LEVELS, QuestCatalog
from src.modules.quests.results import (
    CompletionResult,
    CompletionStage,
    ErrorCode,
    Failed,
)
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    QuestExpiredError,
    QuestNotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.core.store.base import DocumentStore, RecordReader
    from src.modules.quests.completion_service import QuestCompletionService

_DEFAULT_MAX_PER_BOARD = {QuestCadence.DAILY: 3, QuestCadence.WEEKLY: 2}
_DEFAULT_EXPIRY_HOURS = {QuestCadence.DAILY: 24, QuestCadence.WEEKLY: 168}


def career_slug(career: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", career.lower()).strip("-")


def board_period(cadence: QuestCadence, now: datetime) -> str:
    """
    Example:
        >>> board_period(QuestCadence.WEEKLY, datetime(2025, 1, 8))
        '2025-01-05'
    """
    day = now.date()
    if cadence is QuestCadence.WEEKLY:
        # Weeks start on Sunday; date.weekday() is 0 for Monday.
        day = day - timedelta(days=(day.weekday() + 1) % 7)
    return day.isoformat()


def board_key(career: str, cadence: QuestCadence, period: str) -> str:
    return f"{career_slug(career)}:{cadence.value}:{period}"


def quest_id_for(career: str, cadence: QuestCadence, period: str, index: int) -> str:
    return f"{cadence.value}-{period}-{career_slug(career)}-{index}"


class QuestBoardService(BaseService):
    """
    Quest generation, listing and catalog-backed completion.

    Public Methods
    --------------
    - generate_quests() -> Issue today's and this week's boards
    - list_quests() -> Open quests for a career
    - get_quest() -> One issued quest
    - complete_quest() -> Complete an issued quest with its catalog reward
    """

    def __init__(
        self,
        store: DocumentStore,
        catalog: QuestCatalog,
        completion_service: QuestCompletionService,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._catalog = catalog
        self._completions = completion_service
        self._rng = rng or random.Random()
        self._clock = clock

    def _max_per_board(self, cadence: QuestCadence) -> int:
        return self.get_positive_int_config(
            f"quests.{cadence.value}.max_per_board", _DEFAULT_MAX_PER_BOARD[cadence]
        )

    def _expiry(self, cadence: QuestCadence) -> timedelta:
        hours = self.get_positive_int_config(
            f"quests.{cadence.value}.expires_after_hours", _DEFAULT_EXPIRY_HOURS[cadence]
        )
        return timedelta(hours=hours)

    # ========================================================================
    # GENERATION
    # ========================================================================

    async def generate_quests(
        self,
        career: str,
        user_level: int,
        experience: str = "beginner",
        now: Optional[datetime] = None,
    ) -> List[Quest]:
        """
        Issue the current daily and weekly boards for ``career``.

        Returns the quests on both boards, whether issued by this call or an
        earlier one.

        Raises:
            ValidationError: Invalid career, level or experience
            StoreError: The store could not perform the writes
        """
        career = InputValidator.validate_string(career, "career", max_length=100)
        self.validate_non_negative_int(user_level, "user_level")
        experience = InputValidator.validate_choice(
            experience, "experience", EXPERIENCE_LEVELS
        )
        now = now or self._clock()
        career = self._catalog.resolve_career(career)

        quests: List[Quest] = []
        for cadence in QuestCadence:
            quests.extend(
                await self._generate_board(career, cadence, user_level, experience, now)
            )
        return quests

    async def _generate_board(
        self,
        career: str,
        cadence: QuestCadence,
        user_level: int,
        experience: str,
        now: datetime,
    ) -> List[Quest]:
        period = board_period(cadence, now)
        key = board_key(career, cadence, period)

        candidates = self._catalog.eligible_templates(career, cadence, user_level, experience)
        selected = self._rng.sample(
            candidates, min(self._max_per_board(cadence), len(candidates))
        )
        expires_at = now + self._expiry(cadence)
        quests = [
            Quest(
                quest_id=quest_id_for(career, cadence, period, index),
                title=template.title,
                description=template.description,
                xp_reward=template.xp_reward,
                career=career,
                level=template.level,
                difficulty=template.difficulty,
                cadence=cadence,
                issued_at=now,
                expires_at=expires_at,
            )
            for index, template in enumerate(selected)
        ]
        board = QuestBoard(
            career=career,
            cadence=cadence,
            period=period,
            quest_ids=tuple(quest.quest_id for quest in quests),
            generated_at=now,
        )

        async with self._store.transaction() as txn:
            created = await txn.create_record(BOARDS_COLLECTION, key, board.to_record())
            if created is CreateResult.ALREADY_EXISTS:
                existing = QuestBoard.from_record(await txn.get_record(BOARDS_COLLECTION, key))
                issued = await self._load_quests(txn, existing.quest_ids)
            else:
                for quest in quests:
                    await txn.create_record(QUESTS_COLLECTION, quest.quest_id, quest.to_record())
                issued = quests

        if created is CreateResult.ALREADY_EXISTS:
            self.log.debug(
                "Quest board already generated",
                extra={"career": career, "cadence": cadence.value, "period": period},
            )
            return issued

        self.log_operation(
            "generate_quests",
            career=career,
            cadence=cadence.value,
            period=period,
            quest_count=len(quests),
        )
        await self.emit_event(
            "quest.board_generated",
            {
                "career": career,
                "cadence": cadence.value,
                "period": period,
                "quest_ids": list(board.quest_ids),
            },
        )
        return issued

    async def _load_quests(self, reader: RecordReader, quest_ids) -> List[Quest]:
        quests: List[Quest] = []
        for quest_id in quest_ids:
            record = await reader.get_record(QUESTS_COLLECTION, quest_id)
            if record is not None:
                quests.append(Quest.from_record(quest_id, record))
        return quests

    # ========================================================================
    # READS
    # ========================================================================

    async def list_quests(
        self, career: str, now: Optional[datetime] = None
    ) -> List[Quest]:
        """Daily then weekly quests of the current boards that have not expired."""
        career = self._catalog.resolve_career(
            InputValidator.validate_string(career, "career", max_length=100)
        )
        now = now or self._clock()

        open_quests: List[Quest] = []
        for cadence in QuestCadence:
            record = await self._store.get_record(
                BOARDS_COLLECTION, board_key(career, cadence, board_period(cadence, now))
            )
            if record is None:
                continue
            board = QuestBoard.from_record(record)
            quests = await self._load_quests(self._store, board.quest_ids)
            open_quests.extend(quest for quest in quests if not quest.is_expired(now))
        return open_quests

    async def get_quest(self, quest_id: str) -> Quest:
        """
        Raises:
            QuestNotFoundError: No quest issued under this id
        """
        record = await self._store.get_record(QUESTS_COLLECTION, quest_id)
        if record is None:
            raise QuestNotFoundError(quest_id)
        return Quest.from_record(quest_id, record)

    # ========================================================================
    # COMPLETION
    # ========================================================================

    async def complete_quest(
        self, user_id: str, quest_id: str, now: Optional[datetime] = None
    ) -> CompletionResult:
        """
        Complete an issued quest, rewarding the XP recorded on the quest.

        Unknown and expired quests fail at VALIDATING; everything after that
        is the completion protocol of ``QuestCompletionService``.
        """
        now = now or self._clock()
        try:
            InputValidator.validate_identifier(quest_id, "quest_id")
            quest = await self.get_quest(quest_id)
            if quest.is_expired(now):
                raise QuestExpiredError(quest_id, to_iso(quest.expires_at))
        except ValidationError as exc:
            return Failed(CompletionStage.VALIDATING, ErrorCode.INVALID_INPUT, exc.message)
        except QuestNotFoundError as exc:
            return Failed(CompletionStage.VALIDATING, ErrorCode.QUEST_NOT_FOUND, exc.message)
        except QuestExpiredError as exc:
            self.log.info(
                "Rejected completion of expired quest",
                extra={"user_id": user_id, "quest_id": quest_id},
            )
            return Failed(CompletionStage.VALIDATING, ErrorCode.QUEST_EXPIRED, exc.message)
        except StoreError as exc:
            self.log_error("load_quest", exc, level="warning", quest_id=quest_id)
            return Failed(
                CompletionStage.VALIDATING,
                ErrorCode.PERSISTENCE_FAILED,
                exc.message,
                cause=exc.cause,
                retryable=exc.is_retryable,
            )

        return await self._completions.complete_quest(user_id, quest_id, quest.xp_reward)
