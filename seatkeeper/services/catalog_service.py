"""
Seat catalog: read-only venue inventory and administrative blocks
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set
import logging

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatkeeper.core.exceptions import NotFoundError, StorageError
from seatkeeper.models.seat import Seat, SeatBlock
from seatkeeper.models.venue import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatRecord:
    venue_id: str
    seat_id: str
    section: str
    row: str
    number: int
    level: str
    x: float
    y: float
    pricing_tier: str
    is_accessible: bool
    is_blocked: bool


class SeatCatalog:
    """
    Catalog lookups used by the reservation engine and the projector.

    Nothing here writes; the catalog is authored elsewhere.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _execute(self, operation: str, stmt):
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.all()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Catalog {operation} failed: {type(e).__name__}: {e}")
            raise StorageError(f"catalog.{operation}") from e

    async def venue_for_event(self, event_id: str) -> str:
        rows = await self._execute("venue_for_event", select(Event.venue_id).where(Event.id == event_id))
        if not rows:
            raise NotFoundError("Event", event_id)
        return rows[0][0]

    async def lookup(self, venue_id: str) -> List[SeatRecord]:
        stmt = (
            select(Seat)
            .where(Seat.venue_id == venue_id)
            .order_by(Seat.section, Seat.row, Seat.number)
        )
        return [self._to_record(row[0]) for row in await self._execute("lookup", stmt)]

    async def seats_by_id(self, venue_id: str, seat_ids: Iterable[str]) -> Dict[str, SeatRecord]:
        seat_ids = list(seat_ids)
        if not seat_ids:
            return {}
        stmt = select(Seat).where(Seat.venue_id == venue_id, Seat.seat_id.in_(seat_ids))
        records = [self._to_record(row[0]) for row in await self._execute("seats_by_id", stmt)]
        return {record.seat_id: record for record in records}

    async def active_blocks(self, event_id: str, seat_ids: Optional[Iterable[str]], at: datetime) -> Set[str]:
        """Seat ids covered by a seat block for this event at instant `at`"""
        stmt = select(SeatBlock.seat_id).where(
            SeatBlock.event_id == event_id,
            or_(SeatBlock.valid_from.is_(None), SeatBlock.valid_from <= at),
            or_(SeatBlock.valid_until.is_(None), SeatBlock.valid_until > at),
        )
        if seat_ids is not None:
            stmt = stmt.where(SeatBlock.seat_id.in_(list(seat_ids)))
        return {row[0] for row in await self._execute("active_blocks", stmt)}

    async def blocked_seats(self, event_id: str, records: Iterable[SeatRecord], at: datetime) -> Set[str]:
        """Derived Blocked overlay: catalog flag or an active event block"""
        records = list(records)
        blocked = {record.seat_id for record in records if record.is_blocked}
        blocked |= await self.active_blocks(event_id, [record.seat_id for record in records], at)
        return blocked

    @staticmethod
    def _to_record(seat: Seat) -> SeatRecord:
        return SeatRecord(
            venue_id=seat.venue_id,
            seat_id=seat.seat_id,
            section=seat.section,
            row=seat.row,
            number=seat.number,
            level=seat.level,
            x=float(seat.x),
            y=float(seat.y),
            pricing_tier=seat.pricing_tier,
            is_accessible=bool(seat.is_accessible),
            is_blocked=bool(seat.is_blocked),
        )
