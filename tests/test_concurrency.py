"""
Concurrency safety tests.

Demonstrates:
1. Concurrent duplicate gateway callbacks settle a booking exactly once.
2. The per-booking lock serializes one key and never blocks another.
3. Distributed lock prevents simultaneous acquire (mocked Redis).
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from charter.domain.enums import BookingStatus, PaymentStatus, PaymentType
from charter.domain.errors import LockTimeout
from charter.infrastructure.locks import DistributedLock, KeyedAsyncLock, RedisKeyedLock
from charter.infrastructure.repositories import (
    BookingRepository,
    PaymentRepository,
    TransitionRepository,
)
from charter.services.reconciler import CallbackOutcome


class TestConcurrentCallbacks:
    @pytest.mark.asyncio
    async def test_duplicate_callbacks_settle_once(
        self, reconciler, make_booking, callback_payload, session_factory
    ):
        booking = await make_booking()
        form = callback_payload("BK1700000000000-DEPOSIT", "500")

        acks = await asyncio.gather(
            *(reconciler.handle_callback(dict(form)) for _ in range(5))
        )

        outcomes = sorted(ack.outcome.value for ack in acks)
        assert outcomes.count(CallbackOutcome.SETTLED.value) == 1
        assert outcomes.count(CallbackOutcome.DUPLICATE.value) == 4

        async with session_factory() as session:
            payments = await PaymentRepository(session).attempts_for(
                booking.id, PaymentType.DEPOSIT
            )
            transitions = await TransitionRepository(session).for_booking(booking.id)
            stored = await BookingRepository(session).get_by_id(booking.id)
        assert [p.status for p in payments] == [PaymentStatus.COMPLETED]
        assert len(transitions) == 1
        assert stored.status == BookingStatus.PAID_DEPOSIT

    @pytest.mark.asyncio
    async def test_different_bookings_settle_independently(
        self, reconciler, make_booking, callback_payload, session_factory
    ):
        first = await make_booking()
        second = await make_booking()

        acks = await asyncio.gather(
            reconciler.handle_callback(callback_payload(f"{first.booking_number}-DEPOSIT", "500")),
            reconciler.handle_callback(callback_payload(f"{second.booking_number}-DEPOSIT", "500")),
        )

        assert [a.outcome for a in acks] == [CallbackOutcome.SETTLED] * 2
        async with session_factory() as session:
            repo = BookingRepository(session)
            statuses = [(await repo.get_by_id(b.id)).status for b in (first, second)]
        assert statuses == [BookingStatus.PAID_DEPOSIT] * 2


class TestKeyedAsyncLock:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedAsyncLock()
        order: list[str] = []

        async def worker(name: str):
            async with locks.hold("booking-1"):
                order.append(f"{name}:in")
                await asyncio.sleep(0.01)
                order.append(f"{name}:out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a:in", "a:out", "b:in", "b:out"],
            ["b:in", "b:out", "a:in", "a:out"],
        )

    @pytest.mark.asyncio
    async def test_other_keys_do_not_wait(self):
        locks = KeyedAsyncLock(wait_timeout=0.1)
        async with locks.hold("booking-1"):
            async with locks.hold("booking-2"):
                assert locks._locks["booking-1"].locked()
                assert locks._locks["booking-2"].locked()

    @pytest.mark.asyncio
    async def test_wait_timeout_raises(self):
        locks = KeyedAsyncLock(wait_timeout=0.05)
        async with locks.hold("booking-1"):
            with pytest.raises(LockTimeout) as excinfo:
                async with locks.hold("booking-1"):
                    pass
        assert excinfo.value.key == "booking-1"

    @pytest.mark.asyncio
    async def test_idle_keys_are_dropped(self):
        locks = KeyedAsyncLock()
        async with locks.hold("booking-1"):
            pass
        assert locks._locks == {}

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = KeyedAsyncLock(wait_timeout=0.05)
        with pytest.raises(ValueError):
            async with locks.hold("booking-1"):
                raise ValueError("boom")
        async with locks.hold("booking-1"):
            assert locks._locks["booking-1"].locked()


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "booking:b-1", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:booking:b-1", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "booking:b-1", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_acquire_retries_until_free(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[False, False, True])

        lock = DistributedLock(mock_redis, "booking:b-1", ttl_seconds=10)
        assert await lock.acquire(wait_timeout=1.0, poll_interval=0.001) is True
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "booking:b-1", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()


class TestRedisKeyedLock:
    @pytest.mark.asyncio
    async def test_hold_acquires_and_releases(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        locks = RedisKeyedLock(mock_redis, ttl_seconds=15, wait_timeout=0.1)
        async with locks.hold("b-1"):
            mock_redis.eval.assert_not_called()

        assert mock_redis.set.await_args.args[0] == "lock:booking:b-1"
        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hold_times_out(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        locks = RedisKeyedLock(mock_redis, wait_timeout=0.02)
        with pytest.raises(LockTimeout):
            async with locks.hold("b-1"):
                pass
        mock_redis.eval.assert_not_called()
