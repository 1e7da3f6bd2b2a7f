"""
Per-booking mutual exclusion.

Every read-modify-write of a booking (gateway callback, payment initiation,
driver / customer trip events) runs under ``locks.hold(booking_id)`` so two
writers never interleave on the same booking, while different bookings never
wait on each other.

* ``KeyedAsyncLock``  -- in-process ``asyncio.Lock`` per key, reference
  counted so idle keys are dropped.  Correct for a single API process.
* ``RedisKeyedLock``  -- ``DistributedLock`` per key for multi-process
  deployments.

``DistributedLock`` uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from charter.domain.errors import LockTimeout


class DistributedLock:
    _RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(
        self, wait_timeout: float = 0.0, poll_interval: float = 0.05
    ) -> bool:
        """Try to acquire, retrying for up to *wait_timeout* seconds."""
        deadline = time.monotonic() + wait_timeout
        while True:
            if await self.redis.set(self.key, self.token, nx=True, ex=self.ttl):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(self._RELEASE_SCRIPT, 1, self.key, self.token)


class KeyedAsyncLock:
    def __init__(self, wait_timeout: Optional[float] = None):
        self.wait_timeout = wait_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_timeout)
            except asyncio.TimeoutError:
                raise LockTimeout(key) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]


class RedisKeyedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "booking",
        ttl_seconds: int = 30,
        wait_timeout: float = 10.0,
    ):
        self.redis = client
        self.namespace = namespace
        self.ttl = ttl_seconds
        self.wait_timeout = wait_timeout

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = DistributedLock(self.redis, f"{self.namespace}:{key}", self.ttl)
        if not await lock.acquire(wait_timeout=self.wait_timeout):
            raise LockTimeout(key)
        try:
            yield
        finally:
            await lock.release()
