"""
Service Container
=================

Purpose
-------
Builds and owns the Questline services and the infrastructure they share.

Responsibilities
----------------
- Create and initialize the document store selected by ``Config.STORE_BACKEND``
- Connect Redis for the progress cache when ``Config.CACHE_ENABLED``; a Redis
  outage at startup disables the cache instead of failing startup
- Construct the domain services with the shared store, cache, config and bus
- Tear everything down in reverse order

Architecture Notes
------------------
All domain services follow the same constructor pattern:
``(store, ..., config_manager, event_bus, logger)``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.cache.progress import ProgressCache
from src.core.config.config import Config
from src.core.exceptions import RedisConnectionError
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService
from src.core.store import DocumentStore, create_store
from src.modules.progression.service import ProgressionService
from src.modules.quests.board_service import QuestBoardService
from src.modules.quests.catalog import QuestCatalog
from src.modules.quests.completion_service import QuestCompletionService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class ServiceContainer:
    """
    Dependency container for the Questline services.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()
        result = await container.completion.complete_quest(user_id, quest_id, 50)
        await container.shutdown()
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        store: Optional[DocumentStore] = None,
        cache_enabled: Optional[bool] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._store = store
        self._cache_enabled = Config.CACHE_ENABLED if cache_enabled is None else cache_enabled
        self._cache: Optional[type[ProgressCache]] = None

        self._progression: Optional[ProgressionService] = None
        self._completion: Optional[QuestCompletionService] = None
        self._boards: Optional[QuestBoardService] = None
        self._catalog: Optional[QuestCatalog] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        if self._store is None:
            self._store = create_store()
        await self._store.initialize()

        if self._cache_enabled:
            try:
                await RedisService.initialize()
                self._cache = ProgressCache
            except RedisConnectionError as exc:
                self._logger.warning(
                    "Progress cache disabled: Redis unavailable",
                    extra={"error": str(exc)},
                )

        self._catalog = self._timed("quest_catalog", lambda: QuestCatalog(self._config_manager))
        self._completion = self._timed(
            "quest_completion",
            lambda: QuestCompletionService(
                store=self._store,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(QuestCompletionService.__module__),
                progress_cache=self._cache,
            ),
        )
        self._progression = self._timed(
            "progression",
            lambda: ProgressionService(
                store=self._store,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(ProgressionService.__module__),
                progress_cache=self._cache,
            ),
        )
        self._boards = self._timed(
            "quest_board",
            lambda: QuestBoardService(
                store=self._store,
                catalog=self._catalog,
                completion_service=self._completion,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(QuestBoardService.__module__),
            ),
        )

        self._initialized = True
        self._logger.info(
            "Service container initialized",
            extra={
                "store_backend": self._store.name,
                "cache_enabled": self._cache is not None,
                "total_init_time_seconds": round(time.perf_counter() - start, 3),
            },
        )

    def _timed(self, name: str, factory) -> Any:
        start = time.perf_counter()
        try:
            instance = factory()
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise
        self._service_init_times[name] = time.perf_counter() - start
        return instance

    async def shutdown(self) -> None:
        """Wait for in-flight completions, then release infrastructure."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        if self._completion is not None:
            await self._completion.drain()
        await self._event_bus.drain()
        if self._cache is not None:
            await RedisService.shutdown()
        if self._store is not None:
            await self._store.shutdown()

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "store_backend": self._store.name if self._store else None,
            "store_healthy": await self._store.health_check() if self._store else False,
            "cache_enabled": self._cache is not None,
            "cache_healthy": await RedisService.health_check() if self._cache else None,
            "service_count": len(self._service_init_times),
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    def _require(self, service: Optional[Any]) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    @property
    def store(self) -> DocumentStore:
        return self._require(self._store)

    @property
    def progression(self) -> ProgressionService:
        return self._require(self._progression)

    @property
    def completion(self) -> QuestCompletionService:
        return self._require(self._completion)

    @property
    def boards(self) -> QuestBoardService:
        return self._require(self._boards)

    @property
    def catalog(self) -> QuestCatalog:
        return self._require(self._catalog)
