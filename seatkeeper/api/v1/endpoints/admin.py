"""
Admin endpoints: overrides and housekeeping
"""

from typing import Optional

from fastapi import APIRouter, Depends

from seatkeeper.core.dependencies import get_reservation_engine, require_admin
from seatkeeper.schemas.reservation import (
    ForceReleaseRequest,
    ReleaseResponse,
    HoldStatsResponse,
    CompactRequest,
    CompactResponse,
)
from seatkeeper.services.reservation_engine import ReservationEngine

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/events/{event_id}/force-release", response_model=ReleaseResponse)
async def force_release(
    event_id: str,
    body: ForceReleaseRequest,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> ReleaseResponse:
    """
    Free held or booked seats regardless of who holds them
    """
    result = await engine.force_release(event_id, body.seat_ids, body.actor)
    return ReleaseResponse(
        event_id=event_id,
        released=result.released,
        not_released=result.not_released,
        reasons=result.reasons,
    )


@router.get("/events/{event_id}/stats", response_model=HoldStatsResponse)
async def hold_stats(
    event_id: str,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> HoldStatsResponse:
    stats = await engine.hold_stats(event_id)
    return HoldStatsResponse(event_id=event_id, **stats)


@router.post("/compact", response_model=CompactResponse)
async def compact(
    body: Optional[CompactRequest] = None,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> CompactResponse:
    """
    Rewrite lapsed holds to Available, for one event or all of them
    """
    event_id = body.event_id if body else None
    return CompactResponse(compacted=await engine.compact_expired(event_id))
