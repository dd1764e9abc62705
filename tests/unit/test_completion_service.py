"""
Unit tests for QuestCompletionService.

Tests the exactly-once completion protocol: XP arithmetic, idempotence under
repetition and concurrency, failure mapping per stage, atomic rollback,
cancellation and post-commit side effects.
"""

import asyncio
import logging

import pytest

from src.core.event.types import ListenerPriority
from src.core.exceptions import ConfigurationError, StoreError, StoreFailureCause
from src.core.logging.logger import get_logger
from src.core.store.memory import MemoryTransaction
from src.modules.quests.completion_service import QuestCompletionService
from src.modules.quests.idempotency import (
    IdempotencyGuard,
    IdempotencyStatus,
    Reservation,
)
from src.modules.quests.results import (
    AlreadyCompleted,
    CompletionStage,
    ErrorCode,
    Failed,
    Success,
)

from tests.conftest import FIXED_NOW, TEST_USER_ID


async def read_user(store, user_id=TEST_USER_ID):
    return await store.get_record("users", user_id)


# ============================================================================
# PROGRESSION ARITHMETIC
# ============================================================================


class TestSuccessfulCompletion:
    """Completing a quest for the first time."""

    async def test_level_up_when_crossing_threshold(self, completion_service, memory_store, seed_user):
        """280 XP + 50 reaches level 1."""
        await seed_user(xp=280, level=0)

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result == Success(
            new_xp=330,
            new_level=1,
            leveled_up=True,
            xp_awarded=50,
            message="Level up! 50 XP gained, you reached level 1",
        )
        user = await read_user(memory_store)
        assert (user["xp"], user["level"]) == (330, 1)

    async def test_no_level_up_below_threshold(self, completion_service, memory_store, seed_user):
        """50 XP + 30 stays at level 0."""
        await seed_user(xp=50, level=0)

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-b", 30)

        assert isinstance(result, Success)
        assert (result.new_xp, result.new_level, result.leveled_up) == (80, 0, False)
        assert result.message == "30 XP gained, 220 XP to next level"

    async def test_user_record_tracks_last_quest(self, completion_service, memory_store, registered_user):
        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 25)

        user = await read_user(memory_store)
        assert user["last_quest_completed"] == "quest-a"
        assert user["updated_at"] == FIXED_NOW.isoformat()
        assert user["name"] == "Ada"

    async def test_completion_record_written(self, completion_service, memory_store, seed_user):
        await seed_user(xp=280)

        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        record = await memory_store.get_record("quest_completions", f"{TEST_USER_ID}/quest-a")
        assert record == {
            "user_id": TEST_USER_ID,
            "quest_id": "quest-a",
            "xp_awarded": 50,
            "level_before": 0,
            "level_after": 1,
            "leveled_up": True,
            "completed_at": FIXED_NOW.isoformat(),
        }

    async def test_threshold_comes_from_config(self, memory_store, config_manager, event_bus, seed_user):
        config_manager.set("progression.level_xp_threshold", 1000)
        service = QuestCompletionService(
            store=memory_store,
            config_manager=config_manager,
            event_bus=event_bus,
            logger=get_logger("tests.completion"),
        )
        await seed_user(xp=280)

        result = await service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert service.level_xp_threshold == 1000
        assert result.new_level == 0
        assert result.leveled_up is False

    async def test_invalid_threshold_rejected_at_construction(self, memory_store, config_manager, event_bus):
        config_manager.set("progression.level_xp_threshold", 0)

        with pytest.raises(ConfigurationError):
            QuestCompletionService(
                store=memory_store,
                config_manager=config_manager,
                event_bus=event_bus,
                logger=get_logger("tests.completion"),
            )


# ============================================================================
# IDEMPOTENCE
# ============================================================================


class TestIdempotence:
    """A quest is rewarded at most once per user."""

    async def test_second_completion_is_already_completed(self, completion_service, memory_store, registered_user):
        first = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)
        second = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert isinstance(first, Success)
        assert second == AlreadyCompleted(user_id=TEST_USER_ID, quest_id="quest-a")
        assert (await read_user(memory_store))["xp"] == 50

    async def test_repeat_click_grants_once(self, completion_service, memory_store, registered_user):
        """Double submission within a second still yields a single grant."""
        results = [
            await completion_service.complete_quest(TEST_USER_ID, "quest-a", 40)
            for _ in range(2)
        ]

        assert sum(isinstance(r, Success) for r in results) == 1
        assert (await read_user(memory_store))["xp"] == 40

    async def test_reward_value_does_not_bypass_idempotence(self, completion_service, memory_store, registered_user):
        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        again = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 500)

        assert isinstance(again, AlreadyCompleted)
        assert (await read_user(memory_store))["xp"] == 50

    async def test_concurrent_completions_grant_once(self, completion_service, memory_store, registered_user):
        """N concurrent calls: one Success, N-1 AlreadyCompleted."""
        results = await asyncio.gather(
            *(completion_service.complete_quest(TEST_USER_ID, "quest-a", 50) for _ in range(10))
        )

        successes = [r for r in results if isinstance(r, Success)]
        duplicates = [r for r in results if isinstance(r, AlreadyCompleted)]
        assert len(successes) == 1
        assert len(duplicates) == 9
        assert (await read_user(memory_store))["xp"] == 50
        assert memory_store.count("quest_completions") == 1

    async def test_reservation_decides_when_every_check_passes(self, completion_service, memory_store, registered_user, mocker):
        """All calls pass the read-only check before any commits; only one reservation wins."""
        checked = []
        reserved = []
        original_check = IdempotencyGuard.check
        original_reserve = IdempotencyGuard.reserve

        async def check_then_yield(guard, reader, user_id, quest_id):
            status = await original_check(guard, reader, user_id, quest_id)
            checked.append(status)
            await asyncio.sleep(0)
            return status

        async def recording_reserve(guard, writer, completion):
            reservation = await original_reserve(guard, writer, completion)
            reserved.append(reservation)
            return reservation

        mocker.patch.object(IdempotencyGuard, "check", check_then_yield)
        mocker.patch.object(IdempotencyGuard, "reserve", recording_reserve)

        results = await asyncio.gather(
            *(completion_service.complete_quest(TEST_USER_ID, "quest-a", 50) for _ in range(10))
        )

        assert checked == [IdempotencyStatus.ELIGIBLE] * 10
        assert reserved.count(Reservation.RESERVED) == 1
        assert reserved.count(Reservation.CONFLICT) == 9
        assert sum(isinstance(r, Success) for r in results) == 1
        assert sum(isinstance(r, AlreadyCompleted) for r in results) == 9
        assert (await read_user(memory_store))["xp"] == 50
        assert memory_store.count("quest_completions") == 1

    async def test_distinct_quests_accumulate(self, completion_service, memory_store, registered_user):
        results = await asyncio.gather(
            completion_service.complete_quest(TEST_USER_ID, "quest-a", 100),
            completion_service.complete_quest(TEST_USER_ID, "quest-b", 150),
            completion_service.complete_quest(TEST_USER_ID, "quest-c", 75),
        )

        assert all(isinstance(r, Success) for r in results)
        user = await read_user(memory_store)
        assert (user["xp"], user["level"]) == (325, 1)

    async def test_same_quest_different_users(self, completion_service, memory_store, seed_user):
        await seed_user("user_000001")
        await seed_user("user_000002")

        first = await completion_service.complete_quest("user_000001", "quest-a", 50)
        second = await completion_service.complete_quest("user_000002", "quest-a", 50)

        assert isinstance(first, Success)
        assert isinstance(second, Success)

    async def test_failed_check_falls_through_to_reservation(self, completion_service, memory_store, registered_user, mocker):
        """A failed read-only check never decides; the reservation does."""
        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)
        mocker.patch.object(
            IdempotencyGuard,
            "check",
            side_effect=StoreError("get_record", StoreFailureCause.UNAVAILABLE),
        )

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert isinstance(result, AlreadyCompleted)
        assert (await read_user(memory_store))["xp"] == 50


# ============================================================================
# VALIDATION & MISSING USERS
# ============================================================================


class TestValidation:
    """Invalid input fails at VALIDATING with no state change."""

    @pytest.mark.parametrize("reward", [0, -5, True, "50", 50.5, None])
    async def test_rejects_invalid_reward(self, completion_service, memory_store, registered_user, reward):
        before = memory_store.snapshot()

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", reward)

        assert isinstance(result, Failed)
        assert result.stage is CompletionStage.VALIDATING
        assert result.error_code is ErrorCode.INVALID_INPUT
        assert memory_store.snapshot() == before

    @pytest.mark.parametrize("user_id", ["", "short", "user/000001", None, 1234567890])
    async def test_rejects_malformed_user_id(self, completion_service, user_id):
        result = await completion_service.complete_quest(user_id, "quest-a", 50)

        assert result.stage is CompletionStage.VALIDATING
        assert result.error_code is ErrorCode.INVALID_INPUT

    async def test_rejects_empty_quest_id(self, completion_service, registered_user):
        result = await completion_service.complete_quest(TEST_USER_ID, "", 50)

        assert result.error_code is ErrorCode.INVALID_INPUT
        assert "quest_id" in result.reason

    async def test_validation_happens_before_store_access(self, completion_service, memory_store, mocker):
        get_record = mocker.spy(memory_store, "get_record")

        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 0)

        get_record.assert_not_called()


class TestUserNotFound:

    async def test_unknown_user(self, completion_service, memory_store):
        result = await completion_service.complete_quest("user_999999", "quest-a", 50)

        assert isinstance(result, Failed)
        assert result.stage is CompletionStage.LOADING_USER
        assert result.error_code is ErrorCode.USER_NOT_FOUND
        assert result.retryable is False
        assert "sign in again" in result.reason
        assert memory_store.count("quest_completions") == 0


# ============================================================================
# PERSISTENCE FAILURES
# ============================================================================


class TestPersistenceFailures:
    """Store failures map to a stage and leave no partial state."""

    async def test_user_read_failure(self, completion_service, memory_store, registered_user, mocker):
        mocker.patch.object(
            memory_store,
            "get_record",
            side_effect=StoreError("get_record", StoreFailureCause.UNAVAILABLE),
        )

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result.stage is CompletionStage.LOADING_USER
        assert result.error_code is ErrorCode.PERSISTENCE_FAILED
        assert result.cause is StoreFailureCause.UNAVAILABLE
        assert result.retryable is True

    async def test_user_update_failure(self, completion_service, memory_store, registered_user, mocker):
        mocker.patch.object(
            MemoryTransaction,
            "update_record",
            side_effect=StoreError(
                "update_record", StoreFailureCause.PERMISSION_DENIED, collection="users"
            ),
        )

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result.stage is CompletionStage.PERSISTING_USER
        assert result.error_code is ErrorCode.PERSISTENCE_FAILED
        assert result.cause is StoreFailureCause.PERMISSION_DENIED
        assert result.retryable is False
        assert memory_store.count("quest_completions") == 0

    async def test_ledger_failure_rolls_back_xp(self, completion_service, memory_store, registered_user, mocker, caplog):
        """A failed completion record leaves XP unchanged and is logged at ERROR."""
        mocker.patch.object(
            MemoryTransaction,
            "create_record",
            side_effect=StoreError("create_record", StoreFailureCause.UNAVAILABLE),
        )

        with caplog.at_level(logging.ERROR):
            result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result.stage is CompletionStage.RECORDING_COMPLETION
        assert result.error_code is ErrorCode.LEDGER_WRITE_FAILED
        assert result.retryable is True
        assert (await read_user(memory_store))["xp"] == 0
        assert memory_store.count("quest_completions") == 0
        assert any(record.levelno == logging.ERROR for record in caplog.records)

    async def test_retry_after_ledger_failure_succeeds(self, completion_service, memory_store, registered_user, mocker):
        patcher = mocker.patch.object(
            MemoryTransaction,
            "create_record",
            side_effect=StoreError("create_record", StoreFailureCause.UNAVAILABLE),
        )
        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)
        mocker.stop(patcher)

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert isinstance(result, Success)
        assert (await read_user(memory_store))["xp"] == 50

    async def test_commit_failure(self, completion_service, memory_store, registered_user, mocker):
        mocker.patch.object(
            MemoryTransaction,
            "_commit",
            side_effect=StoreError("transaction", StoreFailureCause.UNAVAILABLE),
        )

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result.stage is CompletionStage.PERSISTING_USER
        assert result.error_code is ErrorCode.PERSISTENCE_FAILED
        assert result.retryable is True
        assert (await read_user(memory_store))["xp"] == 0
        assert memory_store.count("quest_completions") == 0

    async def test_unexpected_error_is_internal(self, completion_service, memory_store, registered_user, mocker):
        mocker.patch(
            "src.modules.quests.completion_service.apply_reward",
            side_effect=RuntimeError("boom"),
        )

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result.stage is CompletionStage.COMPUTING
        assert result.error_code is ErrorCode.INTERNAL_ERROR
        assert "boom" not in result.reason
        assert (await read_user(memory_store))["xp"] == 0

    async def test_corrupt_user_record_fails_while_loading(self, completion_service, memory_store, seed_user):
        """A stored record that does not parse reports the loading stage."""
        await seed_user(xp=-5, level=0)

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert result.stage is CompletionStage.LOADING_USER
        assert result.error_code is ErrorCode.INTERNAL_ERROR
        assert (await read_user(memory_store))["xp"] == -5
        assert memory_store.count("quest_completions") == 0


# ============================================================================
# CANCELLATION
# ============================================================================


class TestCancellation:
    """A cancelled caller never leaves a half-applied completion."""

    async def test_cancelled_caller_does_not_abort_protocol(self, completion_service, memory_store, registered_user, mocker):
        entered = asyncio.Event()
        release = asyncio.Event()
        original_update = MemoryTransaction.update_record

        async def slow_update(self, collection, key, fields):
            entered.set()
            await release.wait()
            await original_update(self, collection, key, fields)

        mocker.patch.object(MemoryTransaction, "update_record", slow_update)

        caller = asyncio.create_task(
            completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)
        )
        await entered.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        assert completion_service.inflight_count == 1
        release.set()
        await completion_service.drain()

        assert completion_service.inflight_count == 0
        assert (await read_user(memory_store))["xp"] == 50
        assert memory_store.count("quest_completions") == 1

        retry = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)
        assert isinstance(retry, AlreadyCompleted)


# ============================================================================
# SIDE EFFECTS
# ============================================================================


class TestSideEffects:
    """Events and cache invalidation after commit."""

    async def test_publishes_completion_and_level_up(self, completion_service, event_bus, seed_user):
        received = []

        async def on_event(payload):
            received.append(payload)

        event_bus.subscribe("quest.completed", on_event, identifier="completed")
        event_bus.subscribe("progression.leveled_up", on_event, identifier="leveled")
        await seed_user(xp=280)

        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 50)

        assert len(received) == 2
        assert received[0]["quest_id"] == "quest-a"
        assert received[0]["new_xp"] == 330
        assert received[1]["level_after"] == 1

    async def test_no_level_up_event_below_threshold(self, completion_service, event_bus, registered_user):
        leveled = []

        async def on_level(payload):
            leveled.append(payload)

        event_bus.subscribe("progression.*", on_level)

        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 10)

        assert leveled == []

    async def test_duplicate_completion_publishes_nothing(self, completion_service, event_bus, registered_user):
        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 10)
        received = []

        async def on_event(payload):
            received.append(payload)

        event_bus.subscribe("quest.completed", on_event)
        await completion_service.complete_quest(TEST_USER_ID, "quest-a", 10)

        assert received == []

    async def test_failing_listener_does_not_change_outcome(self, completion_service, event_bus, memory_store, registered_user):
        async def broken(payload):
            raise RuntimeError("listener bug")

        event_bus.subscribe("quest.completed", broken, priority=ListenerPriority.CRITICAL)

        result = await completion_service.complete_quest(TEST_USER_ID, "quest-a", 10)

        assert isinstance(result, Success)
        assert (await read_user(memory_store))["xp"] == 10

    async def test_publish_failure_is_swallowed(self, memory_store, config_manager, mock_event_bus, seed_user):
        mock_event_bus.publish.side_effect = RuntimeError("bus down")
        service = QuestCompletionService(
            store=memory_store,
            config_manager=config_manager,
            event_bus=mock_event_bus,
            logger=get_logger("tests.completion"),
        )
        await seed_user()

        result = await service.complete_quest(TEST_USER_ID, "quest-a", 10)

        assert isinstance(result, Success)

    async def test_cache_invalidated_after_commit(self, memory_store, config_manager, event_bus, mock_cache, seed_user):
        service = QuestCompletionService(
            store=memory_store,
            config_manager=config_manager,
            event_bus=event_bus,
            logger=get_logger("tests.completion"),
            progress_cache=mock_cache,
        )
        await seed_user()

        await service.complete_quest(TEST_USER_ID, "quest-a", 10)
        await service.complete_quest(TEST_USER_ID, "quest-a", 10)

        mock_cache.invalidate.assert_awaited_once_with(TEST_USER_ID)
        mock_cache.get_progress.assert_not_called()
