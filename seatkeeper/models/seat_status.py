"""
Per-(event, seat) availability status rows
"""

from sqlalchemy import Column, String, ForeignKey, Enum, DateTime, UniqueConstraint, Index
import enum

from seatkeeper.models.base import BaseModel


class SeatState(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    BOOKED = "booked"
    # Derived from the catalog, never stored
    BLOCKED = "blocked"


class EventSeatStatus(BaseModel):
    """
    Status row for one seat at one event.

    Absence of a row means Available. Rows are created by the first
    successful hold and afterwards only rewritten by guarded updates.
    """
    __tablename__ = "event_seat_status"
    __table_args__ = (
        UniqueConstraint('event_id', 'seat_id', name='uq_event_seat_status'),
        Index('idx_event_seat_status_holder', 'event_id', 'holder'),
        Index('idx_event_seat_status_expiry', 'status', 'reserved_until'),
    )

    event_id = Column(String(64), ForeignKey("events.id"), nullable=False)
    seat_id = Column(String(64), nullable=False)
    status = Column(
        Enum(
            SeatState,
            native_enum=False,
            length=16,
            values_callable=lambda states: [state.value for state in states],
        ),
        default=SeatState.AVAILABLE,
        nullable=False
    )
    holder = Column(String(128))
    reserved_until = Column(DateTime(timezone=True))
    booking_reference = Column(String(128))

    def __repr__(self):
        return f"<EventSeatStatus(event_id={self.event_id}, seat_id={self.seat_id}, status={self.status}, holder={self.holder})>"
