"""
Redis availability store, booking publisher and circuit breaker

Store tests need a Redis server (REDIS_URL, database 1) and are skipped
without one; the circuit breaker tests run anywhere.
"""

from datetime import timedelta
from unittest.mock import AsyncMock
import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from seatkeeper.core.exceptions import ConflictReason, StorageError
from seatkeeper.core.redis import CircuitBreaker, CircuitOpenError
from seatkeeper.models.seat_status import SeatState
from seatkeeper.services.booking_bridge import RedisBookingPublisher
from seatkeeper.services.redis_store import RedisAvailabilityStore
from seatkeeper.services.reservation_engine import ReservationEngine


@pytest.fixture
def redis_store(redis_client):
    return RedisAvailabilityStore(redis_client, prefix="seatkeeper-test")


@pytest.fixture
def redis_engine(seeded_catalog, redis_store, catalog, clock):
    return ReservationEngine(redis_store, catalog, clock=clock, default_ttl_minutes=15)


@pytest.mark.redis
@pytest.mark.asyncio
class TestRedisAvailabilityStore:

    async def test_insert_is_insert_if_absent(self, redis_store, clock):
        until = clock.now + timedelta(minutes=15)

        assert await redis_store.insert_hold("1", "A1", "alice", until) is True
        assert await redis_store.insert_hold("1", "A1", "bob", until) is False

        row = (await redis_store.fetch("1", ["A1"]))["A1"]
        assert row.status == SeatState.RESERVED
        assert row.holder == "alice"
        assert row.reserved_until == until

    async def test_book_and_clear(self, redis_store, clock):
        await redis_store.insert_hold("1", "A1", "alice", clock.now + timedelta(minutes=15))

        assert await redis_store.book("1", "A1", "bob", "R2", clock.now) is False
        assert await redis_store.book("1", "A1", "alice", "R1", clock.now) is True
        assert await redis_store.clear_hold("1", "A1", "alice") is False

        row = (await redis_store.fetch("1", ["A1"]))["A1"]
        assert row.status == SeatState.BOOKED
        assert row.reserved_until is None
        assert row.booking_reference == "R1"

        assert await redis_store.force_clear("1", "A1") is True
        row = (await redis_store.fetch("1", ["A1"]))["A1"]
        assert row.status == SeatState.AVAILABLE
        assert row.holder is None

    async def test_reclaim_only_lapsed_or_available(self, redis_store, clock):
        until = clock.now + timedelta(minutes=15)
        await redis_store.insert_hold("1", "A1", "alice", until)

        assert await redis_store.reclaim_hold("1", "A1", "bob", until, clock.now) is False
        assert await redis_store.reclaim_hold("1", "A1", "bob", until + timedelta(minutes=15), until) is True
        assert await redis_store.reclaim_hold("1", "A2", "bob", until, clock.now) is False

    async def test_rows_for_event_and_compact(self, redis_store, clock):
        await redis_store.insert_hold("1", "A2", "alice", clock.now - timedelta(minutes=1))
        await redis_store.insert_hold("1", "A1", "alice", clock.now + timedelta(minutes=5))
        await redis_store.insert_hold("2", "A1", "bob", clock.now - timedelta(minutes=1))

        assert [row.seat_id for row in await redis_store.rows_for_event("1", "alice")] == ["A1", "A2"]
        assert await redis_store.compact(clock.now, "1") == 1
        assert await redis_store.compact(clock.now) == 1
        assert await redis_store.compact(clock.now) == 0


@pytest.mark.redis
@pytest.mark.integration
@pytest.mark.asyncio
class TestRedisBackedEngine:

    async def test_end_to_end(self, redis_engine):
        first = await redis_engine.acquire_hold("1", "1", ["A1", "A2"], "holderX")
        second = await redis_engine.acquire_hold("1", "1", ["A2", "A3"], "holderY")
        confirmed = await redis_engine.confirm("1", ["A1", "A2"], "holderX", "R1")
        released = await redis_engine.release("1", ["A1"], "holderX")

        assert first.granted == ["A1", "A2"]
        assert second.granted == ["A3"]
        assert second.reasons == {"A2": ConflictReason.HELD_BY_OTHER}
        assert confirmed.confirmed == ["A1", "A2"]
        assert released.reasons == {"A1": ConflictReason.BOOKED}
        assert await redis_engine.resolve_availability("1", ["A1", "A2", "A3"]) == {
            "A1": SeatState.BOOKED,
            "A2": SeatState.BOOKED,
            "A3": SeatState.RESERVED,
        }

    @pytest.mark.concurrency
    async def test_racing_holds_grant_exactly_one(self, redis_engine):
        results = await asyncio.gather(*[
            redis_engine.acquire_hold("1", "1", ["A1"], f"holder-{i}")
            for i in range(20)
        ])
        assert sum(1 for result in results if result.granted) == 1


@pytest.mark.redis
@pytest.mark.asyncio
class TestRedisBookingPublisher:

    async def test_publishes_booking_json(self, redis_client, seeded_catalog, catalog, store, clock):
        publisher = RedisBookingPublisher(redis_client, "seatkeeper-test:bookings")
        engine = ReservationEngine(store, catalog, booking_sink=publisher, clock=clock)

        pubsub = redis_client.pubsub()
        await pubsub.subscribe("seatkeeper-test:bookings")
        try:
            await engine.acquire_hold("1", "1", ["A1"], "alice")
            await engine.confirm("1", ["A1"], "alice", "R1")

            message = None
            for _ in range(20):
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.5)
                if message:
                    break
            assert message is not None
            payload = json.loads(message["data"])
            assert payload["booking_reference"] == "R1"
            assert payload["seat_ids"] == ["A1"]
            assert payload["confirmed_at"] == clock.now.isoformat()
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()


class FakeMonotonic:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.unit
@pytest.mark.asyncio
class TestCircuitBreaker:

    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=FakeMonotonic())
        failing = AsyncMock(side_effect=RedisConnectionError("down"))

        for _ in range(2):
            with pytest.raises(RedisConnectionError):
                await breaker.call(failing)

        assert breaker.state == "OPEN"
        with pytest.raises(CircuitOpenError):
            await breaker.call(failing)
        assert failing.await_count == 2

    async def test_half_open_success_closes(self):
        clock = FakeMonotonic()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=clock)

        with pytest.raises(RedisConnectionError):
            await breaker.call(AsyncMock(side_effect=RedisConnectionError("down")))
        clock.now = 30

        assert await breaker.call(AsyncMock(return_value="PONG")) == "PONG"
        assert breaker.state == "CLOSED"

    async def test_half_open_failure_reopens(self):
        clock = FakeMonotonic()
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30, clock=clock)
        for _ in range(3):
            await breaker.record_failure()
        clock.now = 31

        with pytest.raises(RedisConnectionError):
            await breaker.call(AsyncMock(side_effect=RedisConnectionError("still down")))

        assert breaker.state == "OPEN"

    async def test_store_maps_open_circuit_to_storage_error(self, clock):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=FakeMonotonic())
        await breaker.record_failure()
        store = RedisAvailabilityStore(AsyncMock(), prefix="seatkeeper-test", circuit_breaker=breaker)

        with pytest.raises(StorageError) as exc_info:
            await store.insert_hold("1", "A1", "alice", clock.now)

        assert exc_info.value.details == {"operation": "insert_hold"}
