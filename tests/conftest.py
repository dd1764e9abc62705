"""
Pytest Configuration and Fixtures for Questline Tests
=====================================================

Purpose
-------
Centralized fixtures for the Questline test suite: configuration, the
in-memory document store, the event bus and the domain services wired the
way the service container wires them.

Architecture Notes
------------------
- Unit tests run against ``MemoryDocumentStore`` (fast, isolated)
- SQL integration tests run against a throwaway SQLite file per test
- ConfigManager is reloaded from the repository ``config/`` directory for
  every test and overrides are discarded afterwards
- Services get a fixed clock so timestamps and quest expiry are deterministic
"""

from __future__ import annotations

import os

# Must be set before any ``src`` import reads the environment.
os.environ["ENVIRONMENT"] = "testing"
os.environ["STORE_BACKEND"] = "memory"
os.environ["CACHE_ENABLED"] = "false"

import random
from datetime import datetime, timezone
from pathlib import Path

import pytest

from src.core.cache.progress import ProgressCache
from src.core.config.manager import ConfigManager
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger
from src.core.store.memory import MemoryDocumentStore
from src.modules.progression.service import ProgressionService
from src.modules.quests.board_service import QuestBoardService
from src.modules.quests.catalog import QuestCatalog
from src.modules.quests.completion_service import QuestCompletionService

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

# Monday, 2025-01-06 12:00 UTC
FIXED_NOW = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)

TEST_USER_ID = "user_000001"


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast tests with no external services")
    config.addinivalue_line("markers", "integration: tests that exercise a real backend")
    config.addinivalue_line("markers", "database: tests that need a SQL database")


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def config_manager():
    """Fresh YAML-backed ConfigManager for every test."""
    ConfigManager.reset()
    ConfigManager.initialize(CONFIG_DIR)
    yield ConfigManager
    ConfigManager.clear_overrides()


@pytest.fixture(autouse=True)
def reset_cache_stats():
    ProgressCache.reset_stats()
    yield
    ProgressCache.reset_stats()


@pytest.fixture
def clock():
    """Deterministic clock returning FIXED_NOW."""
    return lambda: FIXED_NOW


# ============================================================================
# INFRASTRUCTURE FIXTURES
# ============================================================================

@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
async def event_bus():
    """Isolated event bus with short listener timeouts."""
    bus = EventBus(critical_timeout_seconds=0.5, high_timeout_seconds=0.5)
    yield bus
    await bus.drain()
    bus.clear()


@pytest.fixture
def mock_event_bus(mocker):
    bus = mocker.MagicMock()
    bus.publish = mocker.AsyncMock(return_value=[])
    bus.drain = mocker.AsyncMock()
    return bus


@pytest.fixture
def mock_cache(mocker):
    """Stand-in for the ProgressCache class."""
    cache = mocker.MagicMock()
    cache.get_progress = mocker.AsyncMock(return_value=None)
    cache.set_progress = mocker.AsyncMock(return_value=True)
    cache.invalidate = mocker.AsyncMock(return_value=True)
    return cache


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def completion_service(memory_store, config_manager, event_bus, clock):
    return QuestCompletionService(
        store=memory_store,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.completion"),
        clock=clock,
    )


@pytest.fixture
def progression_service(memory_store, config_manager, event_bus, clock):
    return ProgressionService(
        store=memory_store,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.progression"),
        clock=clock,
    )


@pytest.fixture
def catalog(config_manager) -> QuestCatalog:
    return QuestCatalog(config_manager)


@pytest.fixture
def board_service(memory_store, catalog, completion_service, config_manager, event_bus, clock):
    return QuestBoardService(
        store=memory_store,
        catalog=catalog,
        completion_service=completion_service,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.boards"),
        rng=random.Random(0),
        clock=clock,
    )


# ============================================================================
# DATA FIXTURES
# ============================================================================

@pytest.fixture
async def registered_user(progression_service):
    """A freshly registered user with xp=0, level=0."""
    return await progression_service.register_user(
        TEST_USER_ID, name="Ada", career="Web Developer"
    )


@pytest.fixture
def seed_user(memory_store):
    """Write a user record with arbitrary xp/level directly into the store."""

    async def _seed(user_id: str = TEST_USER_ID, xp: int = 0, level: int = 0):
        await memory_store.create_record(
            "users", user_id, {"xp": xp, "level": level, "name": None, "career": None}
        )

    return _seed
