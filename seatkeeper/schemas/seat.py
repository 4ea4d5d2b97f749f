"""
Seat map schemas
"""

from decimal import Decimal
from typing import Dict, List, Optional

from seatkeeper.models.seat_status import SeatState
from seatkeeper.schemas.base import BaseSchema


class SeatViewResponse(BaseSchema):
    seat_id: str
    section: str
    row: str
    number: int
    x: float
    y: float
    tier: str
    tier_name: Optional[str] = None
    price: Optional[Decimal] = None
    color: Optional[str] = None
    accessible: bool
    status: SeatState


class SeatMapResponse(BaseSchema):
    event_id: str
    seats: List[SeatViewResponse]
    summary: Dict[str, int]
