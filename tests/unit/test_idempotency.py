"""
Unit tests for IdempotencyGuard.
"""

from datetime import datetime, timezone

import pytest

from src.modules.quests.idempotency import (
    IdempotencyGuard,
    IdempotencyStatus,
    Reservation,
)
from src.domain.models.progression import QuestCompletion
from src.modules.shared.exceptions import CompletionAlreadyRecordedError

NOW = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


def make_completion(user_id="user_000001", quest_id="quest-1", xp=50):
    return QuestCompletion(
        user_id=user_id,
        quest_id=quest_id,
        xp_awarded=xp,
        level_before=0,
        level_after=0,
        leveled_up=False,
        completed_at=NOW,
    )


@pytest.fixture
def guard():
    return IdempotencyGuard()


class TestCompletionKey:

    def test_key_is_deterministic(self, guard):
        assert guard.completion_key("user_000001", "quest-1") == "user_000001/quest-1"
        assert guard.completion_key("user_000001", "quest-1") == guard.completion_key(
            "user_000001", "quest-1"
        )

    def test_distinct_pairs_give_distinct_keys(self, guard):
        assert guard.completion_key("ab", "c") != guard.completion_key("a", "bc")


class TestCheckAndReserve:
    """Test the read fast path and the atomic reservation."""

    async def test_unrecorded_pair_is_eligible(self, guard, memory_store):
        status = await guard.check(memory_store, "user_000001", "quest-1")

        assert status is IdempotencyStatus.ELIGIBLE

    async def test_first_reservation_wins(self, guard, memory_store):
        first = await guard.reserve(memory_store, make_completion())
        second = await guard.reserve(memory_store, make_completion(xp=999))

        assert first is Reservation.RESERVED
        assert second is Reservation.CONFLICT

        stored = await guard.get_completion(memory_store, "user_000001", "quest-1")
        assert stored.xp_awarded == 50

    async def test_recorded_pair_is_already_completed(self, guard, memory_store):
        await guard.reserve(memory_store, make_completion())

        status = await guard.check(memory_store, "user_000001", "quest-1")

        assert status is IdempotencyStatus.ALREADY_COMPLETED

    async def test_other_user_same_quest_is_independent(self, guard, memory_store):
        await guard.reserve(memory_store, make_completion())

        status = await guard.check(memory_store, "user_000002", "quest-1")

        assert status is IdempotencyStatus.ELIGIBLE

    async def test_record_completion_raises_on_duplicate(self, guard, memory_store):
        await guard.record_completion(memory_store, make_completion())

        with pytest.raises(CompletionAlreadyRecordedError) as exc_info:
            await guard.record_completion(memory_store, make_completion())

        assert exc_info.value.error_code == "COMPLETION_ALREADY_RECORDED"

    async def test_get_completion_missing(self, guard, memory_store):
        assert await guard.get_completion(memory_store, "user_000001", "quest-9") is None
