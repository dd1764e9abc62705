"""
Redis infrastructure for Questline.

``RedisService`` owns the shared async client used by the progress cache.
"""

from src.core.redis.service import RedisService

__all__ = ["RedisService"]
