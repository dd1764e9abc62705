"""
Progression Service
===================

Purpose
-------
Owns the user progression record outside the completion protocol:

- ``register_user``: create the record at first authentication
- ``get_progress``: read XP/level for profile display

XP and level are only ever written by ``QuestCompletionService``; this
service creates records with ``xp=0, level=0`` and reads them.

The progress read consults the advisory ``ProgressCache`` first and fills it
on a miss. The cache is never used to decide anything about completions.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from src.core.store.base import CreateResult
from src.core.validation.input_validator import InputValidator
from src.domain.models.base import utc_now
from src.domain.models.progression import USERS_COLLECTION, UserProgress
from src.modules.progression.formulas import (
    DEFAULT_LEVEL_XP_THRESHOLD,
    progress_percent,
    xp_into_level,
    xp_to_next_level,
)
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import UserNotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.cache.progress import ProgressCache
    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.core.store.base import DocumentStore


@dataclass(frozen=True)
class ProgressSnapshot:
    """What a profile page shows about a user's progression."""

    user_id: str
    xp: int
    level: int
    xp_into_level: int
    xp_to_next_level: int
    progress_percent: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProgressionService(BaseService):
    """
    Registration and read access for user progression records.

    Public Methods
    --------------
    - register_user() -> Create the record on first sign-in (idempotent)
    - get_user() -> Full record
    - get_progress() -> ProgressSnapshot for display
    """

    def __init__(
        self,
        store: DocumentStore,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        progress_cache: Optional[type[ProgressCache]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._cache = progress_cache
        self._clock = clock
        self.level_xp_threshold = self.get_positive_int_config(
            "progression.level_xp_threshold", DEFAULT_LEVEL_XP_THRESHOLD
        )
        self.min_user_id_length = self.get_positive_int_config(
            "progression.min_user_id_length", 10
        )

    async def register_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        career: Optional[str] = None,
    ) -> UserProgress:
        """
        Create the progression record for a newly authenticated identity.

        Repeat calls leave the existing record untouched and return it.

        Raises:
            ValidationError: Malformed user id, name or career
            StoreError: The store could not perform the write
        """
        user_id = InputValidator.validate_identifier(
            user_id, "user_id", min_length=self.min_user_id_length
        )
        if name is not None:
            name = InputValidator.validate_string(name, "name", max_length=100)
        if career is not None:
            career = InputValidator.validate_string(career, "career", max_length=100)

        user = UserProgress.new(user_id, self._clock(), name=name, career=career)
        result = await self._store.create_record(
            USERS_COLLECTION, user_id, user.to_record()
        )

        if result is CreateResult.ALREADY_EXISTS:
            self.log.debug("User already registered", extra={"user_id": user_id})
            return await self.get_user(user_id)

        self.log_operation("register_user", user_id=user_id, career=career)
        await self.emit_event(
            "progression.user_registered",
            {"user_id": user_id, "career": career},
        )
        return user

    async def get_user(self, user_id: str) -> UserProgress:
        """
        Raises:
            UserNotFoundError: No record for this identity
        """
        record = await self._store.get_record(USERS_COLLECTION, user_id)
        if record is None:
            raise UserNotFoundError(user_id)
        return UserProgress.from_record(user_id, record)

    async def get_progress(self, user_id: str) -> ProgressSnapshot:
        """
        Progress for display, from the cache when possible.

        Raises:
            ValidationError: Malformed user id
            UserNotFoundError: No record for this identity
        """
        user_id = InputValidator.validate_identifier(
            user_id, "user_id", min_length=self.min_user_id_length
        )

        cached = await self._cache.get_progress(user_id) if self._cache else None
        if cached is not None:
            return self._snapshot(user_id, cached["xp"], cached["level"])

        user = await self.get_user(user_id)
        if self._cache is not None:
            await self._cache.set_progress(user_id, {"xp": user.xp, "level": user.level})
        return self._snapshot(user_id, user.xp, user.level)

    def _snapshot(self, user_id: str, xp: int, level: int) -> ProgressSnapshot:
        threshold = self.level_xp_threshold
        return ProgressSnapshot(
            user_id=user_id,
            xp=xp,
            level=level,
            xp_into_level=xp_into_level(xp, threshold),
            xp_to_next_level=xp_to_next_level(xp, threshold),
            progress_percent=progress_percent(xp, threshold),
        )
