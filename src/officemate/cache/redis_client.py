"""Redis-backed store for sessions, OTP codes and rate-limit counters.

All keys carry a TTL; nothing in Redis is the system of record.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Set

import redis.asyncio as aioredis

from officemate.config import get_settings

logger = logging.getLogger(__name__)


class RedisStore:
    """Thin JSON/TTL helper over an asyncio Redis client.

    The client only needs the coroutine API used here (get, set, incr,
    expire, ttl, delete, exists, sadd, srem, smembers), so tests can hand in
    any compatible object.
    """

    def __init__(self, client: Any):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            await self.client.set(key, value, ex=max(int(ttl), 1))
        else:
            await self.client.set(key, value)

    async def get_json(self, key: str) -> Optional[dict]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable value at {key}")
            return None

    async def set_json(self, key: str, value: dict, ttl: Optional[int] = None) -> None:
        await self.set(key, json.dumps(value, default=str), ttl)

    async def incr(self, key: str, window: Optional[int] = None) -> int:
        """Increment a counter; the window TTL is set on the first hit only."""
        count = await self.client.incr(key)
        if count == 1 and window:
            await self.client.expire(key, window)
        return int(count)

    async def expire(self, key: str, seconds: int) -> None:
        await self.client.expire(key, seconds)

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-2 missing, -1 no expiry)."""
        return int(await self.client.ttl(key))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def sadd(self, key: str, *members: str) -> None:
        await self.client.sadd(key, *members)

    async def srem(self, key: str, *members: str) -> None:
        await self.client.srem(key, *members)

    async def smembers(self, key: str) -> Set[str]:
        return set(await self.client.smembers(key))

    async def close(self) -> None:
        close = getattr(self.client, "aclose", None) or getattr(self.client, "close", None)
        if close is not None:
            await close()


# Singleton store instance
_store: Optional[RedisStore] = None
_store_lock = asyncio.Lock()


async def get_redis_store() -> RedisStore:
    """Get or create the shared Redis store."""
    global _store

    if _store is not None:
        return _store

    async with _store_lock:
        if _store is not None:
            return _store

        settings = get_settings()
        client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        _store = RedisStore(client)
        logger.info("Redis store initialized")
        return _store


def set_redis_store(store: Optional[RedisStore]) -> None:
    """Replace the shared store (useful for testing)."""
    global _store
    _store = store


async def close_redis_store() -> None:
    """Close the shared Redis connection (call on shutdown)."""
    global _store
    if _store is not None:
        await _store.close()
        _store = None
