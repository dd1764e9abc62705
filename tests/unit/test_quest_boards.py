"""
Unit tests for the quest catalog and QuestBoardService.

Tests template eligibility, idempotent board generation, expiry and
catalog-backed completion.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.exceptions import ConfigurationError, StoreError, StoreFailureCause
from src.domain.models.quest import QuestCadence
from src.modules.quests.board_service import (
    board_key,
    board_period,
    career_slug,
    quest_id_for,
)
from src.modules.quests.catalog import QuestCatalog, QuestTemplate
from src.modules.quests.results import (
    AlreadyCompleted,
    CompletionStage,
    ErrorCode,
    Failed,
    Success,
)
from src.modules.shared.exceptions import QuestNotFoundError, ValidationError

from tests.conftest import FIXED_NOW, TEST_USER_ID

FSD = "Full Stack Developer"


# ============================================================================
# CATALOG
# ============================================================================


class TestQuestCatalog:
    """Templates come from config/quests/catalog.yaml."""

    def test_careers(self, catalog):
        assert catalog.careers() == ["Data Scientist", FSD, "Web Developer"]

    def test_unknown_career_uses_default(self, catalog):
        assert catalog.resolve_career("Astronaut") == FSD
        assert catalog.templates("Astronaut", QuestCadence.DAILY) == catalog.templates(
            FSD, QuestCadence.DAILY
        )

    def test_beginners_see_every_difficulty_up_to_next_level(self, catalog):
        eligible = catalog.eligible_templates(FSD, QuestCadence.DAILY, 0, "beginner")

        assert eligible
        assert all(t.level <= 1 for t in eligible)
        assert len(eligible) == 4

    def test_experience_filters_difficulty(self, catalog):
        eligible = catalog.eligible_templates(FSD, QuestCadence.DAILY, 4, "advanced")

        assert [t.difficulty for t in eligible] == ["advanced"]

    def test_template_eligibility(self):
        template = QuestTemplate(
            title="t", description="", xp_reward=10, difficulty="intermediate", level=2
        )

        assert template.is_eligible(1, "intermediate")
        assert template.is_eligible(1, "beginner")
        assert not template.is_eligible(0, "intermediate")
        assert not template.is_eligible(5, "advanced")

    @pytest.mark.parametrize("xp_reward", [0, -10, "25", True, None])
    def test_invalid_template_reward_rejected(self, config_manager, xp_reward):
        config_manager.set(
            "quests.catalog",
            {FSD: {"daily": [{"title": "Broken", "xp_reward": xp_reward}]}},
        )

        with pytest.raises(ConfigurationError):
            QuestCatalog(config_manager)

    def test_default_career_must_exist(self, config_manager):
        config_manager.set("quests.default_career", "Astronaut")

        with pytest.raises(ConfigurationError):
            QuestCatalog(config_manager)


# ============================================================================
# BOARD KEYS
# ============================================================================


class TestBoardKeys:

    def test_career_slug(self):
        assert career_slug("Full Stack Developer") == "full-stack-developer"
        assert career_slug("  C++ / Rust Dev ") == "c-rust-dev"

    def test_daily_period_is_utc_date(self):
        assert board_period(QuestCadence.DAILY, FIXED_NOW) == "2025-01-06"

    @pytest.mark.parametrize(
        "day,expected",
        [
            (datetime(2025, 1, 5, tzinfo=timezone.utc), "2025-01-05"),
            (datetime(2025, 1, 6, tzinfo=timezone.utc), "2025-01-05"),
            (datetime(2025, 1, 11, 23, 59, tzinfo=timezone.utc), "2025-01-05"),
            (datetime(2025, 1, 12, tzinfo=timezone.utc), "2025-01-12"),
        ],
    )
    def test_weekly_period_starts_sunday(self, day, expected):
        assert board_period(QuestCadence.WEEKLY, day) == expected

    def test_keys(self):
        assert board_key(FSD, QuestCadence.DAILY, "2025-01-06") == "full-stack-developer:daily:2025-01-06"
        assert quest_id_for(FSD, QuestCadence.WEEKLY, "2025-01-05", 1) == (
            "weekly-2025-01-05-full-stack-developer-1"
        )


# ============================================================================
# GENERATION
# ============================================================================


class TestGenerateQuests:
    """Boards are generated once per career, cadence and period."""

    async def test_generates_daily_and_weekly(self, board_service):
        quests = await board_service.generate_quests(FSD, 0)

        daily = [q for q in quests if q.cadence is QuestCadence.DAILY]
        weekly = [q for q in quests if q.cadence is QuestCadence.WEEKLY]
        assert [q.quest_id for q in daily] == [
            f"daily-2025-01-06-full-stack-developer-{i}" for i in range(3)
        ]
        assert [q.quest_id for q in weekly] == [
            f"weekly-2025-01-05-full-stack-developer-{i}" for i in range(2)
        ]
        assert all(q.expires_at == FIXED_NOW + timedelta(hours=24) for q in daily)
        assert all(q.expires_at == FIXED_NOW + timedelta(hours=168) for q in weekly)
        assert all(q.level <= 1 for q in quests)

    async def test_generation_is_idempotent(self, board_service, memory_store, event_bus):
        generated = []

        async def on_generated(payload):
            generated.append(payload["cadence"])

        event_bus.subscribe("quest.board_generated", on_generated)

        first = await board_service.generate_quests(FSD, 0)
        second = await board_service.generate_quests(FSD, 0)

        assert second == first
        assert memory_store.count("quests") == 5
        assert memory_store.count("quest_boards") == 2
        assert generated == ["daily", "weekly"]

    async def test_unknown_career_gets_default_board(self, board_service):
        quests = await board_service.generate_quests("Astronaut", 0)

        assert quests
        assert all(q.career == FSD for q in quests)

    async def test_board_limited_by_eligible_templates(self, board_service):
        quests = await board_service.generate_quests(FSD, 4, experience="advanced")

        assert len([q for q in quests if q.cadence is QuestCadence.DAILY]) == 1
        assert all(q.difficulty == "advanced" for q in quests)

    @pytest.mark.parametrize(
        "career,level,experience",
        [("", 0, "beginner"), (FSD, -1, "beginner"), (FSD, 0, "expert"), (FSD, True, "beginner")],
    )
    async def test_rejects_invalid_arguments(self, board_service, career, level, experience):
        with pytest.raises(ValidationError):
            await board_service.generate_quests(career, level, experience=experience)

    async def test_store_failure_propagates(self, board_service, memory_store, mocker):
        mocker.patch.object(
            memory_store,
            "transaction",
            side_effect=StoreError("transaction", StoreFailureCause.UNAVAILABLE),
        )

        with pytest.raises(StoreError):
            await board_service.generate_quests(FSD, 0)


class TestListQuests:

    async def test_lists_open_quests(self, board_service):
        generated = await board_service.generate_quests(FSD, 0)

        listed = await board_service.list_quests(FSD, now=FIXED_NOW + timedelta(hours=1))

        assert [q.quest_id for q in listed] == [q.quest_id for q in generated]

    async def test_next_day_only_weekly_remain(self, board_service):
        await board_service.generate_quests(FSD, 0)

        listed = await board_service.list_quests(FSD, now=FIXED_NOW + timedelta(days=1))

        assert {q.cadence for q in listed} == {QuestCadence.WEEKLY}

    async def test_nothing_generated(self, board_service):
        assert await board_service.list_quests("Web Developer") == []

    async def test_get_quest_unknown(self, board_service):
        with pytest.raises(QuestNotFoundError):
            await board_service.get_quest("daily-1999-01-01-nobody-0")


# ============================================================================
# COMPLETION
# ============================================================================


class TestCompleteIssuedQuest:
    """Completing an issued quest rewards its catalog XP."""

    async def test_rewards_quest_xp(self, board_service, registered_user):
        quests = await board_service.generate_quests(FSD, 0)
        quest = quests[0]

        result = await board_service.complete_quest(TEST_USER_ID, quest.quest_id)

        assert isinstance(result, Success)
        assert result.xp_awarded == quest.xp_reward
        assert result.new_xp == quest.xp_reward

    async def test_second_completion_is_already_completed(self, board_service, registered_user):
        quests = await board_service.generate_quests(FSD, 0)

        await board_service.complete_quest(TEST_USER_ID, quests[0].quest_id)
        again = await board_service.complete_quest(TEST_USER_ID, quests[0].quest_id)

        assert isinstance(again, AlreadyCompleted)

    async def test_unknown_quest(self, board_service, registered_user, memory_store):
        result = await board_service.complete_quest(TEST_USER_ID, "daily-1999-01-01-nobody-0")

        assert result == Failed(
            stage=CompletionStage.VALIDATING,
            error_code=ErrorCode.QUEST_NOT_FOUND,
            reason="Quest not found: daily-1999-01-01-nobody-0",
        )
        assert (await memory_store.get_record("users", TEST_USER_ID))["xp"] == 0

    async def test_expired_quest(self, board_service, registered_user, memory_store):
        quests = await board_service.generate_quests(FSD, 0)
        daily = quests[0]

        result = await board_service.complete_quest(
            TEST_USER_ID, daily.quest_id, now=FIXED_NOW + timedelta(hours=24)
        )

        assert result.stage is CompletionStage.VALIDATING
        assert result.error_code is ErrorCode.QUEST_EXPIRED
        assert memory_store.count("quest_completions") == 0

    async def test_malformed_quest_id(self, board_service):
        result = await board_service.complete_quest(TEST_USER_ID, "bad/id")

        assert result.error_code is ErrorCode.INVALID_INPUT

    async def test_quest_lookup_failure(self, board_service, memory_store, mocker):
        mocker.patch.object(
            memory_store,
            "get_record",
            side_effect=StoreError("get_record", StoreFailureCause.UNAVAILABLE),
        )

        result = await board_service.complete_quest(TEST_USER_ID, "quest-a")

        assert result.error_code is ErrorCode.PERSISTENCE_FAILED
        assert result.retryable is True
