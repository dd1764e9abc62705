"""
Advisory caches.

- ``ProgressCache``: last known xp/level per user for profile reads
"""

from src.core.cache.progress import ProgressCache

__all__ = ["ProgressCache"]
