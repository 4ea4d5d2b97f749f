"""
Reservation request/response schemas

Requests are deliberately loose; identifiers, TTLs and seat counts are
validated by the reservation engine so every caller gets the same rules.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from seatkeeper.core.exceptions import ConflictReason
from seatkeeper.models.seat_status import SeatState
from seatkeeper.schemas.base import BaseSchema, Identifier


class AvailabilityRequest(BaseSchema):
    seat_ids: List[Identifier]


class AvailabilityResponse(BaseSchema):
    event_id: str
    seats: Dict[str, SeatState]


class HoldRequest(BaseSchema):
    venue_id: Identifier
    seat_ids: List[Identifier]
    holder: Identifier
    ttl_minutes: Optional[float] = Field(None, description="Defaults to HOLD_TTL_MINUTES")


class ExtendHoldsRequest(BaseSchema):
    holder: Identifier
    ttl_minutes: Optional[float] = None


class HoldResponse(BaseSchema):
    event_id: str
    holder: str
    granted: List[str]
    denied: List[str]
    reasons: Dict[str, ConflictReason] = {}
    expires_at: Optional[datetime] = None


class HoldViewResponse(BaseSchema):
    seat_id: str
    reserved_until: datetime


class HolderHoldsResponse(BaseSchema):
    event_id: str
    holder: str
    holds: List[HoldViewResponse]


class ConfirmRequest(BaseSchema):
    seat_ids: List[Identifier]
    holder: Identifier
    booking_reference: str


class ConfirmResponse(BaseSchema):
    event_id: str
    holder: str
    booking_reference: str
    confirmed: List[str]
    failed: List[str]
    reasons: Dict[str, ConflictReason] = {}


class ReleaseRequest(BaseSchema):
    seat_ids: List[Identifier]
    holder: Identifier


class ForceReleaseRequest(BaseSchema):
    seat_ids: List[Identifier]
    actor: str = Field(..., description="Operator performing the override, recorded in the log")


class ReleaseResponse(BaseSchema):
    event_id: str
    released: List[str]
    not_released: List[str]
    reasons: Dict[str, ConflictReason] = {}


class HoldStatsResponse(BaseSchema):
    event_id: str
    total: int
    active: int
    expired: int
    booked: int


class CompactRequest(BaseSchema):
    event_id: Optional[Identifier] = None


class CompactResponse(BaseSchema):
    compacted: int
