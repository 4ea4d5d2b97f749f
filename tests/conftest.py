"""
Test configuration and fixtures

The SQL store runs against an on-disk SQLite database per test (aiosqlite);
Redis fixtures skip when no server is reachable.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
import os

import pytest
import pytest_asyncio
import redis.asyncio as redis
from redis.exceptions import RedisError
from httpx import AsyncClient, ASGITransport

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./seatkeeper-test.db"
os.environ["REDIS_URL"] = os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/1")
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["LOG_FORMAT"] = "text"

from seatkeeper.config import settings
from seatkeeper.core.database import build_engine, build_session_factory, init_db
from seatkeeper.models import Venue, Event, Seat, SeatBlock, BlockType
from seatkeeper.services.availability_store import SqlAvailabilityStore
from seatkeeper.services.booking_bridge import BookingSink
from seatkeeper.services.catalog_service import SeatCatalog
from seatkeeper.services.reservation_engine import ReservationEngine


class FakeClock:
    """Callable clock the tests move forward by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 19, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database file for every test"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'seatkeeper.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


def _seat(seat_id: str, row: str, number: int, tier: str, **kwargs) -> Seat:
    return Seat(
        venue_id="1",
        seat_id=seat_id,
        section="Orchestra",
        row=row,
        number=number,
        x=Decimal(40 * number),
        y=Decimal(30 if row == "A" else 60),
        pricing_tier=tier,
        **kwargs
    )


@pytest_asyncio.fixture
async def seeded_catalog(session_factory, clock):
    """
    Venue 1 hosts events 1 and 2; venue 2 hosts event 3.

    A1-A3 are plain VIP seats, B1 is accessible, B2 is flagged blocked in
    the catalog and B3 carries a maintenance block for event 1 that ends two
    hours after the test clock starts.
    """
    async with session_factory() as session:
        session.add_all([
            Venue(id="1", name="Main Stage"),
            Venue(id="2", name="Studio"),
            Event(id="1", venue_id="1", name="Hamlet", starts_at=clock.now + timedelta(days=1)),
            Event(id="2", venue_id="1", name="Hamlet (matinee)", starts_at=clock.now + timedelta(days=2)),
            Event(id="3", venue_id="2", name="Workshop"),
            _seat("A1", "A", 1, "P1"),
            _seat("A2", "A", 2, "P1"),
            _seat("A3", "A", 3, "P1"),
            _seat("B1", "B", 1, "AA", is_accessible=True),
            _seat("B2", "B", 2, "P2", is_blocked=True),
            _seat("B3", "B", 3, "P3"),
            SeatBlock(
                event_id="1",
                seat_id="B3",
                block_type=BlockType.MAINTENANCE.value,
                reason="Broken armrest",
                valid_until=clock.now + timedelta(hours=2),
            ),
        ])
        await session.commit()


@pytest.fixture
def store(session_factory):
    return SqlAvailabilityStore(session_factory)


@pytest.fixture
def catalog(session_factory):
    return SeatCatalog(session_factory)


@pytest.fixture
def booking_sink():
    return AsyncMock(spec=BookingSink)


@pytest.fixture
def engine(seeded_catalog, store, catalog, booking_sink, clock):
    return ReservationEngine(
        store,
        catalog,
        booking_sink=booking_sink,
        clock=clock,
        default_ttl_minutes=15,
        max_ttl_minutes=1440,
        max_seats_per_request=10,
    )


@pytest_asyncio.fixture
async def client(engine, catalog, session_factory):
    """Create test client with dependency overrides"""
    from seatkeeper.main import app
    from seatkeeper.core.dependencies import get_reservation_engine, get_projector, get_session_factory
    from seatkeeper.services.availability_projector import AvailabilityProjector

    app.dependency_overrides[get_reservation_engine] = lambda: engine
    app.dependency_overrides[get_projector] = lambda: AvailabilityProjector(engine, catalog)
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def redis_client():
    """Redis client on the test database; skips the test without a server"""
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError):
        await client.aclose()
        pytest.skip("Redis server not reachable")

    # Clear test database
    await client.flushdb()
    yield client

    # Cleanup
    await client.flushdb()
    await client.aclose()
