"""Tests for the Redis store helper."""

import typing

import pytest

from officemate.cache.redis_client import RedisStore, get_redis_store


class TestRedisStore:
    def test_annotations_resolve(self):
        hints = typing.get_type_hints(RedisStore.smembers)
        assert hints["return"] == typing.Set[str]

    @pytest.mark.asyncio
    async def test_json_roundtrip(self, store):
        await store.set_json("session:abc", {"user_id": "u1", "count": 2}, ttl=60)
        assert await store.get_json("session:abc") == {"user_id": "u1", "count": 2}
        assert 0 < await store.ttl("session:abc") <= 60

    @pytest.mark.asyncio
    async def test_undecodable_json(self, store):
        await store.set("session:bad", "{not json")
        assert await store.get_json("session:bad") is None

    @pytest.mark.asyncio
    async def test_counter_window_set_once(self, store):
        assert await store.incr("rate_limit:x", window=30) == 1
        assert await store.incr("rate_limit:x", window=30) == 2
        assert await store.ttl("rate_limit:x") <= 30

    @pytest.mark.asyncio
    async def test_set_members(self, store):
        await store.sadd("user_sessions:u1", "s1", "s2")
        await store.srem("user_sessions:u1", "s1")
        assert await store.smembers("user_sessions:u1") == {"s2"}
        assert await store.smembers("user_sessions:nobody") == set()

    @pytest.mark.asyncio
    async def test_shared_store_override(self, store):
        assert await get_redis_store() is store
