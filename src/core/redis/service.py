"""
Async Redis service for Questline.

Purpose
-------
Class-level singleton around ``redis.asyncio.Redis`` used by the progress
display cache. Redis is never authoritative for progression state; callers
treat every failure here as "no cached value".

Operations
----------
- ``initialize()`` / ``shutdown()`` / ``health_check()``
- ``get`` / ``set`` / ``delete`` on string values
- ``get_json`` / ``set_json`` for whole JSON documents

Errors from the client are logged and re-raised as
``RedisConnectionError``; nothing else escapes.

Configuration
-------------
``Config.REDIS_URL``, ``Config.REDIS_MAX_CONNECTIONS``,
``Config.REDIS_SOCKET_TIMEOUT``.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from src.core.config.config import Config
from src.core.exceptions import RedisConnectionError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


def _url_scheme(url: str) -> str:
    return url.split("://")[0] if "://" in url else "unknown"


class RedisService:
    """Singleton async Redis client with logged KV/JSON operations."""

    _client: Optional[AsyncRedis] = None
    _init_lock: Optional[asyncio.Lock] = None
    _is_healthy: bool = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @classmethod
    def _get_init_lock(cls) -> asyncio.Lock:
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect and PING. Idempotent.

        Raises
        ------
        RedisConnectionError
            If the server cannot be reached.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._get_init_lock():
            if cls._client is not None:
                return

            url = url or Config.REDIS_URL
            start_time = time.monotonic()
            client: AsyncRedis = AsyncRedis.from_url(
                url,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                encoding="utf-8",
                decode_responses=True,
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                health_check_interval=30,
            )

            try:
                await client.ping()  # type: ignore[misc]
            except (RedisError, OSError) as exc:
                await client.aclose()
                logger.error(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": _url_scheme(url),
                    },
                )
                raise RedisConnectionError("initialize", exc) from exc

            cls._client = client
            cls._is_healthy = True
            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": _url_scheme(url),
                    "max_connections": Config.REDIS_MAX_CONNECTIONS,
                    "initialization_time_ms": round(
                        (time.monotonic() - start_time) * 1000, 2
                    ),
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call when not initialized."""
        client = cls._client
        cls._client = None
        cls._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except (RedisError, OSError) as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def is_healthy(cls) -> bool:
        """Last known health, without I/O."""
        return cls._is_healthy

    @classmethod
    async def health_check(cls) -> bool:
        if cls._client is None:
            cls._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await cls._client.ping()  # type: ignore[misc]
        except (RedisError, OSError) as exc:
            cls._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        cls._is_healthy = bool(pong)
        logger.debug(
            "Redis health check",
            extra={
                "healthy": cls._is_healthy,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return cls._is_healthy

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the client.

        Raises
        ------
        RuntimeError
            If ``initialize()`` has not run.
        """
        if cls._client is None:
            raise RuntimeError(
                "RedisService not initialized. Call RedisService.initialize() first."
            )
        return cls._client

    # ------------------------------------------------------------------ #
    # Key/value operations
    # ------------------------------------------------------------------ #

    @classmethod
    def _fail(cls, command: str, key: str, exc: Exception) -> RedisConnectionError:
        cls._is_healthy = False
        logger.warning(
            f"Redis {command} operation failed",
            extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
        )
        return RedisConnectionError(f"{command} {key}", exc)

    @classmethod
    async def get(cls, key: str) -> Optional[str]:
        try:
            result = await cls.client().get(key)
        except (RedisError, OSError) as exc:
            raise cls._fail("GET", key, exc) from exc

        logger.debug("Redis GET operation", extra={"key": key, "found": result is not None})
        return result

    @classmethod
    async def set(cls, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        try:
            result = await cls.client().set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise cls._fail("SET", key, exc) from exc

        logger.debug(
            "Redis SET operation",
            extra={"key": key, "ttl_seconds": ttl_seconds, "success": bool(result)},
        )
        return bool(result)

    @classmethod
    async def delete(cls, key: str) -> int:
        try:
            count = await cls.client().delete(key)
        except (RedisError, OSError) as exc:
            raise cls._fail("DELETE", key, exc) from exc

        logger.debug("Redis DELETE operation", extra={"key": key, "deleted_count": int(count)})
        return int(count)

    @classmethod
    async def get_json(cls, key: str) -> Optional[Any]:
        """Fetch and decode a JSON document; undecodable values read as missing."""
        raw = await cls.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable JSON value", extra={"key": key})
            return None

    @classmethod
    async def set_json(cls, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        return await cls.set(key, payload, ttl_seconds=ttl_seconds)
