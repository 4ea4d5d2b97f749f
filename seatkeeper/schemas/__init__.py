"""
Pydantic schemas for request and response validation
"""

from seatkeeper.schemas.reservation import (
    AvailabilityRequest,
    AvailabilityResponse,
    HoldRequest,
    ExtendHoldsRequest,
    HoldResponse,
    HolderHoldsResponse,
    ConfirmRequest,
    ConfirmResponse,
    ReleaseRequest,
    ForceReleaseRequest,
    ReleaseResponse,
    HoldStatsResponse,
    CompactRequest,
    CompactResponse
)
from seatkeeper.schemas.seat import (
    SeatViewResponse,
    SeatMapResponse
)

__all__ = [
    "AvailabilityRequest",
    "AvailabilityResponse",
    "HoldRequest",
    "ExtendHoldsRequest",
    "HoldResponse",
    "HolderHoldsResponse",
    "ConfirmRequest",
    "ConfirmResponse",
    "ReleaseRequest",
    "ForceReleaseRequest",
    "ReleaseResponse",
    "HoldStatsResponse",
    "CompactRequest",
    "CompactResponse",
    "SeatViewResponse",
    "SeatMapResponse"
]
