"""
Database models
"""

from seatkeeper.models.venue import Venue, Event
from seatkeeper.models.seat import Seat, SeatBlock, BlockType
from seatkeeper.models.seat_status import EventSeatStatus, SeatState

__all__ = [
    "Venue",
    "Event",
    "Seat",
    "SeatBlock",
    "BlockType",
    "EventSeatStatus",
    "SeatState",
]
