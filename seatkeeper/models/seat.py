"""
Seat catalog models
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Numeric, Boolean, DateTime, Text, UniqueConstraint, Index
from sqlalchemy.orm import relationship
import enum

from seatkeeper.models.base import BaseModel


class Seat(BaseModel):
    """
    Static per-venue seat record. Never written by the reservation engine.
    """
    __tablename__ = "seats"
    __table_args__ = (
        UniqueConstraint('venue_id', 'seat_id', name='uq_venue_seat'),
    )

    venue_id = Column(String(64), ForeignKey("venues.id"), nullable=False, index=True)
    seat_id = Column(String(64), nullable=False)
    section = Column(String(20), nullable=False)
    row = Column(String(10), nullable=False)
    number = Column(Integer, nullable=False)
    level = Column(String(20), nullable=False, default="orchestra")
    x = Column(Numeric(10, 2), nullable=False, default=0)
    y = Column(Numeric(10, 2), nullable=False, default=0)
    pricing_tier = Column(String(20), nullable=False)
    is_accessible = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    # Relationships
    venue = relationship("Venue", back_populates="seats")

    def __repr__(self):
        return f"<Seat(venue_id={self.venue_id}, seat_id={self.seat_id}, section={self.section}, row={self.row}, number={self.number})>"


class BlockType(str, enum.Enum):
    MANUAL = "manual"
    EQUIPMENT = "equipment"
    VIP = "vip"
    MAINTENANCE = "maintenance"
    GUEST_LIST = "guest-list"
    ACCESSIBILITY = "accessibility"


class SeatBlock(BaseModel):
    """
    Administrative block of one seat for one event, optionally time-boxed.

    A block is active when valid_from <= now < valid_until, with a missing
    bound meaning open-ended.
    """
    __tablename__ = "seat_blocks"
    __table_args__ = (
        Index('idx_seat_blocks_event_seat', 'event_id', 'seat_id'),
    )

    event_id = Column(String(64), ForeignKey("events.id"), nullable=False)
    seat_id = Column(String(64), nullable=False)
    block_type = Column(String(20), nullable=False, default=BlockType.MANUAL.value)
    reason = Column(Text)
    valid_from = Column(DateTime(timezone=True))
    valid_until = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<SeatBlock(event_id={self.event_id}, seat_id={self.seat_id}, type={self.block_type})>"
