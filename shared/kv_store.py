"""
Shared key/value store used for the tenant config cache, rate limit windows,
and usage counters.

A store is constructed once per process, started on service startup and
closed on shutdown. It is always passed to its users explicitly. Every
operation is independent: there are no cross-key transactions, and callers
must treat ``CacheStoreError`` as a recoverable condition.
"""

import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CacheStoreError
from shared.logging import get_logger


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal async key/value interface with per-key expiry."""

    async def start(self) -> None: ...

    async def close(self) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, expiration_ttl: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """Redis-backed store. Redis failures surface as ``CacheStoreError``."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("shared.kv_store.redis")
        self._redis: Optional[redis.Redis] = None

    async def start(self) -> None:
        await self._get_redis()
        self.logger.info("Redis key/value store started")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis key/value store stopped")

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        try:
            client = await self._get_redis()
            return await client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheStoreError(f"get failed for {key}: {exc}") from exc

    async def put(self, key: str, value: str, expiration_ttl: int) -> None:
        try:
            client = await self._get_redis()
            await client.set(key, value, ex=expiration_ttl)
        except (RedisError, OSError) as exc:
            raise CacheStoreError(f"put failed for {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            client = await self._get_redis()
            await client.delete(key)
        except (RedisError, OSError) as exc:
            raise CacheStoreError(f"delete failed for {key}: {exc}") from exc


class InMemoryKeyValueStore:
    """Process-local store with lazy expiry, for local runs and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        self._data.clear()

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, expiration_ttl: int) -> None:
        self._data[key] = (str(value), self._clock() + expiration_ttl)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when absent."""
        entry = self._data.get(key)
        if entry is None:
            return None
        return max(0.0, entry[1] - self._clock())


def create_kv_store(url: str, *, clock: Callable[[], float] = time.time) -> KeyValueStore:
    """Build a store from a URL: ``memory://`` or a redis URL."""
    if url.startswith("memory://"):
        return InMemoryKeyValueStore(clock=clock)
    return RedisKeyValueStore(url)
