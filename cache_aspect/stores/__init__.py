"""
Cache stores.

Provides the store contract, the bounded in-memory reference store and a
Redis-backed store. Any object exposing the contract methods can be
registered, subclassing is not required.
"""

from .base import CacheItem, CacheStore, STORE_METHODS, is_valid_store
from .memory import CacheEntry, InMemoryCacheStore, DEFAULT_MAX_ENTRIES
from .redis_store import RedisCacheStore

__all__ = [
    "CacheEntry",
    "CacheItem",
    "CacheStore",
    "DEFAULT_MAX_ENTRIES",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "STORE_METHODS",
    "is_valid_store",
]
