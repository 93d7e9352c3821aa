"""Namespaced TTL caching.

Modules:
    ttl_cache: CacheBackend interface, thread-safe TTLCache, CacheSweeper
    registry: CacheRegistry (one cache per namespace) and key helpers
"""

from src.cache.registry import CacheRegistry
from src.cache.ttl_cache import CacheBackend, CacheEntry, CacheStats, CacheSweeper, TTLCache

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheRegistry",
    "CacheStats",
    "CacheSweeper",
    "TTLCache",
]
