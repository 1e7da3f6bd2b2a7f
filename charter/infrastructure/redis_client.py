"""Redis async connection pool and lock backend selection."""

import redis.asyncio as aioredis

from charter.config import settings
from charter.infrastructure.locks import KeyedAsyncLock, RedisKeyedLock

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def close_pool() -> None:
    await _pool.disconnect()


def build_booking_locks():
    """Per-booking lock provider for the configured backend."""
    if settings.lock_backend == "redis":
        return RedisKeyedLock(
            aioredis.Redis(connection_pool=_pool),
            ttl_seconds=settings.lock_ttl_seconds,
            wait_timeout=settings.lock_wait_seconds,
        )
    return KeyedAsyncLock(wait_timeout=settings.lock_wait_seconds)
