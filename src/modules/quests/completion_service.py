"""
Quest Completion Service
========================

Purpose
-------
Grants a quest's XP reward to a user exactly once and reports the outcome
as a typed ``CompletionResult``.

Protocol
--------
VALIDATING -> LOADING_USER -> CHECKING_IDEMPOTENCY -> COMPUTING ->
PERSISTING_USER -> RECORDING_COMPLETION -> DONE, any stage -> FAILED.

COMPUTING, PERSISTING_USER and RECORDING_COMPLETION share one store
transaction. The user record is re-read under a row lock, the XP update is
staged, and the completion record is reserved with create-if-absent. If the
reservation conflicts, the transaction is rolled back and the caller gets
``AlreadyCompleted``; XP is only ever committed together with its
completion record.

Failure Semantics
-----------------
- invalid input: ``Failed(VALIDATING, INVALID_INPUT)``, no store access
- missing user record: ``Failed(LOADING_USER, USER_NOT_FOUND)``, not retryable
- store failure on the user write or the commit:
  ``Failed(PERSISTING_USER, PERSISTENCE_FAILED)`` with the store cause
- store failure on the completion record:
  ``Failed(RECORDING_COMPLETION, LEDGER_WRITE_FAILED)``, logged at ERROR;
  the XP write is rolled back with it
- anything unexpected: ``INTERNAL_ERROR`` at the stage it was raised in

Only ``CancelledError`` propagates. A cancelled caller does not cancel the
protocol: it runs in its own task behind ``asyncio.shield`` and finishes
committing or rolling back on its own.

Side Effects
------------
After commit, best-effort: ``quest.completed`` (and ``progression.leveled_up``
on a level-up) on the event bus, and invalidation of the progress cache.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from src.core.exceptions import LedgerWriteFailedError, StoreError
from src.core.logging.logger import LogContext
from src.core.validation.input_validator import InputValidator
from src.domain.models.base import utc_now
from src.domain.models.progression import (
    USERS_COLLECTION,
    QuestCompletion,
    UserProgress,
)
from src.modules.progression.formulas import (
    DEFAULT_LEVEL_XP_THRESHOLD,
    ProgressionOutcome,
    apply_reward,
    xp_to_next_level,
)
from src.modules.quests.idempotency import (
    IdempotencyGuard,
    IdempotencyStatus,
    Reservation,
)
from src.modules.quests.results import (
    AlreadyCompleted,
    CompletionResult,
    CompletionStage,
    ErrorCode,
    Failed,
    Success,
)
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    CompletionAlreadyRecordedError,
    UserNotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from src.core.cache.progress import ProgressCache
    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.core.store.base import DocumentStore

DEFAULT_MIN_USER_ID_LENGTH = 10


def format_progress_message(
    outcome: ProgressionOutcome, xp_reward: int, threshold: int
) -> str:
    if outcome.leveled_up:
        return f"Level up! {xp_reward} XP gained, you reached level {outcome.new_level}"
    remaining = xp_to_next_level(outcome.new_xp, threshold)
    return f"{xp_reward} XP gained, {remaining} XP to next level"


class _Attempt:
    """Stage reached by one completion call, for failure reporting."""

    __slots__ = ("stage",)

    def __init__(self) -> None:
        self.stage = CompletionStage.START


class QuestCompletionService(BaseService):
    """
    Completion orchestrator.

    Public Methods
    --------------
    - complete_quest() -> Grant a quest reward once
    - drain() -> Wait for completions still running after caller cancellation
    """

    def __init__(
        self,
        store: DocumentStore,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        progress_cache: Optional[type[ProgressCache]] = None,
        guard: Optional[IdempotencyGuard] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._cache = progress_cache
        self._guard = guard or IdempotencyGuard()
        self._clock = clock

        self.level_xp_threshold = self.get_positive_int_config(
            "progression.level_xp_threshold", DEFAULT_LEVEL_XP_THRESHOLD
        )
        self.min_user_id_length = self.get_positive_int_config(
            "progression.min_user_id_length", DEFAULT_MIN_USER_ID_LENGTH
        )

        self._inflight: set[asyncio.Task[CompletionResult]] = set()

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def complete_quest(
        self, user_id: str, quest_id: str, xp_reward: int
    ) -> CompletionResult:
        """
        Complete ``quest_id`` for ``user_id``, granting ``xp_reward`` once.

        Returns:
            Success, AlreadyCompleted or Failed. Never raises except
            CancelledError.

        Example:
            >>> result = await service.complete_quest("user_000001", "q-intro", 150)
            >>> result.message
            '150 XP gained, 150 XP to next level'
        """
        task = asyncio.get_running_loop().create_task(
            self._run_protocol(user_id, quest_id, xp_reward),
            name=f"complete-quest-{user_id}-{quest_id}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def drain(self) -> None:
        """Wait until every started completion has committed or rolled back."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ========================================================================
    # PROTOCOL
    # ========================================================================

    async def _run_protocol(
        self, user_id: Any, quest_id: Any, xp_reward: Any
    ) -> CompletionResult:
        attempt = _Attempt()
        async with LogContext(
            user_id=user_id,
            quest_id=quest_id,
            component="quests",
            operation="complete_quest",
        ):
            try:
                return await self._complete(attempt, user_id, quest_id, xp_reward)
            except Exception as exc:
                self.log.exception(
                    "Unexpected error completing quest",
                    extra={
                        "stage": attempt.stage.value,
                        "error_type": type(exc).__name__,
                    },
                )
                return Failed(
                    stage=attempt.stage,
                    error_code=ErrorCode.INTERNAL_ERROR,
                    reason="Unexpected error while completing the quest",
                )

    def _validate(self, user_id: Any, quest_id: Any, xp_reward: Any) -> None:
        InputValidator.validate_identifier(
            user_id, "user_id", min_length=self.min_user_id_length
        )
        InputValidator.validate_identifier(quest_id, "quest_id")
        InputValidator.validate_reward(xp_reward, "xp_reward")

    async def _complete(
        self, attempt: _Attempt, user_id: Any, quest_id: Any, xp_reward: Any
    ) -> CompletionResult:
        attempt.stage = CompletionStage.VALIDATING
        try:
            self._validate(user_id, quest_id, xp_reward)
        except ValidationError as exc:
            self.log.info(
                "Quest completion rejected",
                extra={"field": exc.details.get("field"), "reason": exc.message},
            )
            return Failed(
                stage=CompletionStage.VALIDATING,
                error_code=ErrorCode.INVALID_INPUT,
                reason=exc.message,
            )

        self.log_operation("complete_quest", xp_reward=xp_reward)

        attempt.stage = CompletionStage.LOADING_USER
        try:
            record = await self._store.get_record(USERS_COLLECTION, user_id)
        except StoreError as exc:
            return self._persistence_failed(attempt.stage, exc)
        if record is None:
            return self._user_not_found(user_id)

        attempt.stage = CompletionStage.CHECKING_IDEMPOTENCY
        try:
            status = await self._guard.check(self._store, user_id, quest_id)
        except StoreError as exc:
            # The reservation below still decides; the lookup is only a shortcut.
            self.log_error("check_idempotency", exc, level="warning")
            status = IdempotencyStatus.ELIGIBLE
        if status is IdempotencyStatus.ALREADY_COMPLETED:
            self.log.info("Quest already completed")
            return AlreadyCompleted(user_id=user_id, quest_id=quest_id)

        body_done = False
        try:
            async with self._store.transaction() as txn:
                attempt.stage = CompletionStage.LOADING_USER
                locked = await txn.get_record(USERS_COLLECTION, user_id, for_update=True)
                if locked is None:
                    raise UserNotFoundError(user_id)
                user = UserProgress.from_record(user_id, locked)

                attempt.stage = CompletionStage.COMPUTING
                now = self._clock()
                outcome = apply_reward(
                    user.xp, user.level, xp_reward, self.level_xp_threshold
                )
                updated = user.with_progress(
                    outcome.new_xp, outcome.new_level, quest_id, now
                )
                completion = QuestCompletion(
                    user_id=user_id,
                    quest_id=quest_id,
                    xp_awarded=xp_reward,
                    level_before=user.level,
                    level_after=outcome.new_level,
                    leveled_up=outcome.leveled_up,
                    completed_at=now,
                )

                attempt.stage = CompletionStage.PERSISTING_USER
                await txn.update_record(
                    USERS_COLLECTION, user_id, updated.progress_fields()
                )

                attempt.stage = CompletionStage.RECORDING_COMPLETION
                try:
                    reservation = await self._guard.reserve(txn, completion)
                except StoreError as exc:
                    raise LedgerWriteFailedError(user_id, quest_id, exc) from exc
                if reservation is Reservation.CONFLICT:
                    raise CompletionAlreadyRecordedError(user_id, quest_id)
                body_done = True

        except CompletionAlreadyRecordedError:
            self.log.info("Quest completed concurrently; rolled back duplicate grant")
            return AlreadyCompleted(user_id=user_id, quest_id=quest_id)

        except UserNotFoundError:
            return self._user_not_found(user_id)

        except LedgerWriteFailedError as exc:
            self.log_error(
                "record_completion",
                exc,
                cause=exc.original_error.cause.value,
                xp_reward=xp_reward,
            )
            return Failed(
                stage=CompletionStage.RECORDING_COMPLETION,
                error_code=ErrorCode.LEDGER_WRITE_FAILED,
                reason=exc.message,
                cause=exc.original_error.cause,
                retryable=exc.is_retryable,
            )

        except StoreError as exc:
            # A failure after the body finished is the commit itself.
            if body_done:
                attempt.stage = CompletionStage.PERSISTING_USER
            return self._persistence_failed(attempt.stage, exc)

        attempt.stage = CompletionStage.DONE
        self.log.info(
            "Quest completed",
            extra={
                "xp_awarded": xp_reward,
                "new_xp": outcome.new_xp,
                "new_level": outcome.new_level,
                "leveled_up": outcome.leveled_up,
            },
        )

        await self._after_commit(completion, outcome)

        return Success(
            new_xp=outcome.new_xp,
            new_level=outcome.new_level,
            leveled_up=outcome.leveled_up,
            xp_awarded=xp_reward,
            message=format_progress_message(
                outcome, xp_reward, self.level_xp_threshold
            ),
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _user_not_found(self, user_id: str) -> Failed:
        error = UserNotFoundError(user_id)
        self.log.warning("Quest completion for unknown user")
        return Failed(
            stage=CompletionStage.LOADING_USER,
            error_code=ErrorCode.USER_NOT_FOUND,
            reason=error.message,
            retryable=False,
        )

    def _persistence_failed(self, stage: CompletionStage, exc: StoreError) -> Failed:
        self.log_error(
            stage.value, exc, level="warning", cause=exc.cause.value
        )
        return Failed(
            stage=stage,
            error_code=ErrorCode.PERSISTENCE_FAILED,
            reason=exc.message,
            cause=exc.cause,
            retryable=exc.is_retryable,
        )

    async def _after_commit(
        self, completion: QuestCompletion, outcome: ProgressionOutcome
    ) -> None:
        payload = {
            "user_id": completion.user_id,
            "quest_id": completion.quest_id,
            "xp_awarded": completion.xp_awarded,
            "new_xp": outcome.new_xp,
            "level_before": completion.level_before,
            "level_after": completion.level_after,
            "leveled_up": completion.leveled_up,
            "completed_at": completion.to_record()["completed_at"],
        }
        try:
            await self.emit_event("quest.completed", payload)
            if outcome.leveled_up:
                await self.emit_event("progression.leveled_up", payload)
        except Exception as exc:
            self.log_error("publish_completion_events", exc, level="warning")

        if self._cache is not None:
            await self._cache.invalidate(completion.user_id)
