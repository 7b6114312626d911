"""
Redis-backed cache store.
"""

import json
from typing import Any, Iterable, List, Optional, Sequence, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import StoreOperationError
from shared.logging import get_logger
from .base import CacheItem, CacheStore, normalize_keys, validate_ttl


class RedisCacheStore(CacheStore):
    """Redis cache store holding JSON-encoded values.

    Failures are raised as ``StoreOperationError``; nothing is swallowed,
    so the interception layer can propagate them to the caller.
    """

    def __init__(self, redis_url: str, prefix: str = "cache:"):
        self.redis_url = redis_url
        self.prefix = prefix
        self.logger = get_logger("cache_aspect.stores.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        return self._redis

    async def start(self):
        """Open the connection and verify it."""
        try:
            client = await self._get_redis()
            await client.ping()
            self.logger.info("Redis cache store started", prefix=self.prefix)
        except RedisError as e:
            self.logger.error("Failed to start Redis cache store", error=str(e))
            raise StoreOperationError("start", str(e))

    async def stop(self):
        """Close the connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis cache store stopped")

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        return json.loads(raw)

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._get_redis()
            raw = await client.get(self._key(key))
        except RedisError as e:
            self.logger.error("Redis get failed", key=key, error=str(e))
            raise StoreOperationError("get", str(e), {"key": key})
        return self._decode(raw)

    async def get_many(self, keys: Sequence[str]) -> List[Optional[Any]]:
        keys = list(keys)
        if not keys:
            return []
        try:
            client = await self._get_redis()
            raws = await client.mget([self._key(k) for k in keys])
        except RedisError as e:
            self.logger.error("Redis mget failed", keys=len(keys), error=str(e))
            raise StoreOperationError("get_many", str(e), {"keys": keys})
        return [self._decode(raw) for raw in raws]

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = validate_ttl(ttl)
        try:
            client = await self._get_redis()
            result = await client.set(self._key(key), self._encode(value), px=ttl or None)
        except RedisError as e:
            self.logger.error("Redis set failed", key=key, error=str(e))
            raise StoreOperationError("set", str(e), {"key": key})
        return bool(result)

    async def set_many(self, entries: Iterable[CacheItem]) -> List[bool]:
        entries = list(entries)
        if not entries:
            return []
        try:
            client = await self._get_redis()
            async with client.pipeline(transaction=False) as pipe:
                for entry in entries:
                    pipe.set(
                        self._key(entry.key),
                        self._encode(entry.value),
                        px=validate_ttl(entry.ttl) or None,
                    )
                results = await pipe.execute()
        except RedisError as e:
            self.logger.error("Redis pipelined set failed", entries=len(entries), error=str(e))
            raise StoreOperationError("set_many", str(e), {"keys": [entry.key for entry in entries]})
        return [bool(result) for result in results]

    async def delete(self, key: Union[str, Sequence[str]]) -> bool:
        keys = normalize_keys(key)
        if not keys:
            return True
        try:
            client = await self._get_redis()
            await client.delete(*[self._key(k) for k in keys])
        except RedisError as e:
            self.logger.error("Redis delete failed", keys=keys, error=str(e))
            raise StoreOperationError("delete", str(e), {"keys": keys})
        return True

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            client = await self._get_redis()
            await client.ping()
            return True
        except RedisError:
            return False
