"""Redis cache layer."""

from officemate.cache.redis_client import (
    RedisStore,
    close_redis_store,
    get_redis_store,
    set_redis_store,
)

__all__ = ["RedisStore", "get_redis_store", "set_redis_store", "close_redis_store"]
