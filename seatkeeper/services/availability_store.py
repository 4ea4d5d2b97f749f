"""
Availability store: durable per-(event, seat) status rows with
compare-and-set writes.

Every mutating method is a single conditional write that reports whether it
took effect. The caller never reads a row and then writes it unconditionally;
the guard is evaluated by the store against its current value, so two racing
writers for one seat can never both succeed.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import select, insert, update, and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatkeeper.core.exceptions import StorageError
from seatkeeper.core.metrics import metrics_collector
from seatkeeper.models.seat_status import EventSeatStatus, SeatState

logger = logging.getLogger(__name__)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite hands those back) as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class StatusRow:
    event_id: str
    seat_id: str
    status: SeatState
    holder: Optional[str] = None
    reserved_until: Optional[datetime] = None
    booking_reference: Optional[str] = None

    def is_live_hold(self, now: datetime) -> bool:
        return (
            self.status == SeatState.RESERVED
            and self.reserved_until is not None
            and self.reserved_until > now
        )

    def effective_state(self, now: datetime) -> SeatState:
        """A lapsed hold is indistinguishable from no row at all"""
        if self.status == SeatState.BOOKED:
            return SeatState.BOOKED
        if self.is_live_hold(now):
            return SeatState.RESERVED
        return SeatState.AVAILABLE


class AvailabilityStore(ABC):
    """Contract every availability backend implements"""

    @abstractmethod
    async def fetch(self, event_id: str, seat_ids: Iterable[str]) -> Dict[str, StatusRow]:
        """Current rows for the given seats; seats without a row are omitted"""

    @abstractmethod
    async def insert_hold(self, event_id: str, seat_id: str, holder: str, until: datetime) -> bool:
        """Create a Reserved row, only if no row exists yet"""

    @abstractmethod
    async def reclaim_hold(self, event_id: str, seat_id: str, holder: str, until: datetime, now: datetime) -> bool:
        """Take over a row that is Available or holds a lapsed reservation"""

    @abstractmethod
    async def refresh_hold(self, event_id: str, seat_id: str, holder: str, until: datetime, now: datetime) -> bool:
        """Push out the expiry of a live hold owned by `holder`"""

    @abstractmethod
    async def book(self, event_id: str, seat_id: str, holder: str, reference: str, now: datetime) -> bool:
        """Turn a live hold owned by `holder` into a booking"""

    @abstractmethod
    async def clear_hold(self, event_id: str, seat_id: str, holder: str) -> bool:
        """Drop a hold owned by `holder`, expired or not. Bookings are untouched."""

    @abstractmethod
    async def force_clear(self, event_id: str, seat_id: str) -> bool:
        """Privileged: make a held or booked seat Available"""

    @abstractmethod
    async def rows_for_event(self, event_id: str, holder: Optional[str] = None) -> List[StatusRow]:
        """All rows of an event, optionally only those of one holder"""

    @abstractmethod
    async def compact(self, now: datetime, event_id: Optional[str] = None) -> int:
        """Rewrite lapsed holds to physically Available; returns rows rewritten"""


class SqlAvailabilityStore(AvailabilityStore):
    """
    SQLAlchemy-backed store.

    One row per (event, seat) is enforced by the uq_event_seat_status unique
    constraint, so insert-if-absent is a plain INSERT that loses with an
    IntegrityError. Every other transition is one UPDATE whose WHERE clause
    carries the expected prior state; its rowcount says who won.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as e:
            metrics_collector.record_storage_failure(operation)
            logger.error(f"Availability store {operation} failed: {type(e).__name__}: {e}")
            raise StorageError(operation) from e

    async def _guarded_update(self, operation: str, guard, values: dict) -> bool:
        stmt = (
            update(EventSeatStatus)
            .where(guard)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction(operation) as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @staticmethod
    def _key(event_id: str, seat_id: str):
        return and_(EventSeatStatus.event_id == event_id, EventSeatStatus.seat_id == seat_id)

    @staticmethod
    def _live_hold_of(holder: str, now: datetime):
        return and_(
            EventSeatStatus.status == SeatState.RESERVED,
            EventSeatStatus.holder == holder,
            EventSeatStatus.reserved_until > now,
        )

    @staticmethod
    def _to_row(record: EventSeatStatus) -> StatusRow:
        return StatusRow(
            event_id=record.event_id,
            seat_id=record.seat_id,
            status=SeatState(record.status),
            holder=record.holder,
            reserved_until=ensure_utc(record.reserved_until),
            booking_reference=record.booking_reference,
        )

    async def fetch(self, event_id: str, seat_ids: Iterable[str]) -> Dict[str, StatusRow]:
        seat_ids = list(seat_ids)
        if not seat_ids:
            return {}
        stmt = select(EventSeatStatus).where(
            EventSeatStatus.event_id == event_id,
            EventSeatStatus.seat_id.in_(seat_ids),
        )
        async with self._transaction("fetch") as session:
            records = (await session.execute(stmt)).scalars().all()
            return {record.seat_id: self._to_row(record) for record in records}

    async def insert_hold(self, event_id: str, seat_id: str, holder: str, until: datetime) -> bool:
        stmt = insert(EventSeatStatus).values(
            event_id=event_id,
            seat_id=seat_id,
            status=SeatState.RESERVED,
            holder=holder,
            reserved_until=until,
        )
        try:
            async with self._transaction("insert_hold") as session:
                await session.execute(stmt)
        except IntegrityError:
            logger.debug(f"Insert lost for seat {seat_id} at event {event_id}: row already exists")
            return False
        return True

    async def reclaim_hold(self, event_id: str, seat_id: str, holder: str, until: datetime, now: datetime) -> bool:
        guard = and_(
            self._key(event_id, seat_id),
            or_(
                EventSeatStatus.status == SeatState.AVAILABLE,
                and_(
                    EventSeatStatus.status == SeatState.RESERVED,
                    EventSeatStatus.reserved_until <= now,
                ),
            ),
        )
        return await self._guarded_update("reclaim_hold", guard, {
            "status": SeatState.RESERVED,
            "holder": holder,
            "reserved_until": until,
            "booking_reference": None,
        })

    async def refresh_hold(self, event_id: str, seat_id: str, holder: str, until: datetime, now: datetime) -> bool:
        guard = and_(self._key(event_id, seat_id), self._live_hold_of(holder, now))
        return await self._guarded_update("refresh_hold", guard, {"reserved_until": until})

    async def book(self, event_id: str, seat_id: str, holder: str, reference: str, now: datetime) -> bool:
        guard = and_(self._key(event_id, seat_id), self._live_hold_of(holder, now))
        return await self._guarded_update("book", guard, {
            "status": SeatState.BOOKED,
            "reserved_until": None,
            "booking_reference": reference,
        })

    async def clear_hold(self, event_id: str, seat_id: str, holder: str) -> bool:
        guard = and_(
            self._key(event_id, seat_id),
            EventSeatStatus.status == SeatState.RESERVED,
            EventSeatStatus.holder == holder,
        )
        return await self._guarded_update("clear_hold", guard, _CLEARED)

    async def force_clear(self, event_id: str, seat_id: str) -> bool:
        guard = and_(
            self._key(event_id, seat_id),
            EventSeatStatus.status.in_([SeatState.RESERVED, SeatState.BOOKED]),
        )
        return await self._guarded_update("force_clear", guard, _CLEARED)

    async def rows_for_event(self, event_id: str, holder: Optional[str] = None) -> List[StatusRow]:
        stmt = select(EventSeatStatus).where(EventSeatStatus.event_id == event_id)
        if holder is not None:
            stmt = stmt.where(EventSeatStatus.holder == holder)
        stmt = stmt.order_by(EventSeatStatus.seat_id)
        async with self._transaction("rows_for_event") as session:
            records = (await session.execute(stmt)).scalars().all()
            return [self._to_row(record) for record in records]

    async def compact(self, now: datetime, event_id: Optional[str] = None) -> int:
        guard = and_(
            EventSeatStatus.status == SeatState.RESERVED,
            EventSeatStatus.reserved_until <= now,
        )
        if event_id is not None:
            guard = and_(guard, EventSeatStatus.event_id == event_id)
        stmt = (
            update(EventSeatStatus)
            .where(guard)
            .values(**_CLEARED)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("compact") as session:
            result = await session.execute(stmt)
            return result.rowcount


_CLEARED = {
    "status": SeatState.AVAILABLE,
    "holder": None,
    "reserved_until": None,
    "booking_reference": None,
}
