"""
Progress display cache.

Holds the last known ``xp``/``level`` of a user for profile rendering.
The cache is advisory: the completion protocol never reads it, and every
Redis failure degrades to a miss (reads) or ``False`` (writes).

Key Format
----------
``questline:v1:user:{user_id}:progress``

TTL comes from ``cache.ttl.user_progress`` (default 300 seconds).
"""

import time
from typing import Any, Dict, Optional

from src.core.config import ConfigManager
from src.core.exceptions import RedisConnectionError
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService

logger = get_logger(__name__)


class ProgressCache:
    """Cached progress snapshots keyed by user id."""

    PROGRESS_KEY = "questline:v1:user:{user_id}:progress"
    DEFAULT_TTL_SECONDS = 300

    _stats: Dict[str, int] = {"hits": 0, "misses": 0, "sets": 0, "invalidations": 0, "errors": 0}

    @classmethod
    def key_for(cls, user_id: str) -> str:
        return cls.PROGRESS_KEY.format(user_id=user_id)

    @classmethod
    def _get_ttl(cls) -> int:
        return ConfigManager.get_int(
            "cache.ttl.user_progress", cls.DEFAULT_TTL_SECONDS, min_val=1
        )

    @classmethod
    def is_available(cls) -> bool:
        return RedisService.is_initialized()

    @classmethod
    async def get_progress(cls, user_id: str) -> Optional[Dict[str, Any]]:
        """Cached progress fields, or None on a miss or any Redis failure."""
        if not cls.is_available():
            return None

        start_time = time.perf_counter()
        key = cls.key_for(user_id)
        try:
            data = await RedisService.get_json(key)
        except RedisConnectionError as e:
            cls._stats["errors"] += 1
            logger.warning(
                "Progress cache read failed, treating as miss",
                extra={"user_id": user_id, "error_type": type(e).__name__},
            )
            return None

        elapsed_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if isinstance(data, dict) and "xp" in data and "level" in data:
            cls._stats["hits"] += 1
            logger.debug(
                "Cache HIT: user_progress",
                extra={"user_id": user_id, "latency_ms": elapsed_ms},
            )
            return data

        cls._stats["misses"] += 1
        logger.debug(
            "Cache MISS: user_progress",
            extra={"user_id": user_id, "latency_ms": elapsed_ms},
        )
        return None

    @classmethod
    async def set_progress(
        cls, user_id: str, progress: Dict[str, Any], ttl: Optional[int] = None
    ) -> bool:
        if not cls.is_available():
            return False

        ttl = ttl if ttl is not None else cls._get_ttl()
        try:
            success = await RedisService.set_json(cls.key_for(user_id), progress, ttl_seconds=ttl)
        except RedisConnectionError as e:
            cls._stats["errors"] += 1
            logger.warning(
                "Progress cache write failed",
                extra={"user_id": user_id, "error_type": type(e).__name__},
            )
            return False

        if success:
            cls._stats["sets"] += 1
        return success

    @classmethod
    async def invalidate(cls, user_id: str) -> bool:
        """Drop the cached entry. True only if a key was deleted."""
        if not cls.is_available():
            return False

        try:
            deleted = await RedisService.delete(cls.key_for(user_id))
        except RedisConnectionError as e:
            cls._stats["errors"] += 1
            logger.warning(
                "Progress cache invalidation failed",
                extra={"user_id": user_id, "error_type": type(e).__name__},
            )
            return False

        cls._stats["invalidations"] += 1
        logger.debug(
            "Invalidated user_progress",
            extra={"user_id": user_id, "deleted": deleted},
        )
        return deleted > 0

    @classmethod
    def get_stats(cls) -> Dict[str, Any]:
        lookups = cls._stats["hits"] + cls._stats["misses"]
        hit_rate = round(cls._stats["hits"] / lookups * 100, 2) if lookups else 0.0
        return {**cls._stats, "hit_rate": hit_rate}

    @classmethod
    def reset_stats(cls) -> None:
        for name in cls._stats:
            cls._stats[name] = 0
