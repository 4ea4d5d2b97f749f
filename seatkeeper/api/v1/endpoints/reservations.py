"""
Seat hold, confirmation and release endpoints

Holder identity always comes from the request body; conflicts on individual
seats are reported in the response, never as an error status.
"""

from fastapi import APIRouter, Depends, Query

from seatkeeper.core.dependencies import get_reservation_engine
from seatkeeper.schemas.reservation import (
    AvailabilityRequest,
    AvailabilityResponse,
    HoldRequest,
    ExtendHoldsRequest,
    HoldResponse,
    HolderHoldsResponse,
    HoldViewResponse,
    ConfirmRequest,
    ConfirmResponse,
    ReleaseRequest,
    ReleaseResponse,
)
from seatkeeper.services.reservation_engine import ReservationEngine

router = APIRouter()


@router.post("/{event_id}/availability", response_model=AvailabilityResponse)
async def resolve_availability(
    event_id: str,
    body: AvailabilityRequest,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> AvailabilityResponse:
    """
    Current state of the requested seats
    """
    seats = await engine.resolve_availability(event_id, body.seat_ids)
    return AvailabilityResponse(event_id=event_id, seats=seats)


@router.post("/{event_id}/holds", response_model=HoldResponse)
async def acquire_hold(
    event_id: str,
    body: HoldRequest,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> HoldResponse:
    """
    Hold seats for a holder; each seat is granted or denied on its own
    """
    result = await engine.acquire_hold(event_id, body.venue_id, body.seat_ids, body.holder, body.ttl_minutes)
    return HoldResponse(
        event_id=event_id,
        holder=result.holder,
        granted=result.granted,
        denied=result.denied,
        reasons=result.reasons,
        expires_at=result.expires_at,
    )


@router.post("/{event_id}/holds/extend", response_model=HoldResponse)
async def extend_holds(
    event_id: str,
    body: ExtendHoldsRequest,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> HoldResponse:
    """
    Push out the expiry of every live hold of the holder
    """
    result = await engine.extend_holds(event_id, body.holder, body.ttl_minutes)
    return HoldResponse(
        event_id=event_id,
        holder=result.holder,
        granted=result.granted,
        denied=result.denied,
        reasons=result.reasons,
        expires_at=result.expires_at,
    )


@router.get("/{event_id}/holds", response_model=HolderHoldsResponse)
async def list_holds(
    event_id: str,
    holder: str = Query(..., description="Holder whose live holds to list"),
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> HolderHoldsResponse:
    holds = await engine.holder_holds(event_id, holder)
    return HolderHoldsResponse(
        event_id=event_id,
        holder=holder.strip(),
        holds=[HoldViewResponse(seat_id=hold.seat_id, reserved_until=hold.reserved_until) for hold in holds],
    )


@router.post("/{event_id}/confirm", response_model=ConfirmResponse)
async def confirm(
    event_id: str,
    body: ConfirmRequest,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> ConfirmResponse:
    """
    Turn the holder's live holds into bookings
    """
    result = await engine.confirm(event_id, body.seat_ids, body.holder, body.booking_reference)
    return ConfirmResponse(
        event_id=event_id,
        holder=result.holder,
        booking_reference=result.booking_reference,
        confirmed=result.confirmed,
        failed=result.failed,
        reasons=result.reasons,
    )


@router.post("/{event_id}/release", response_model=ReleaseResponse)
async def release(
    event_id: str,
    body: ReleaseRequest,
    engine: ReservationEngine = Depends(get_reservation_engine)
) -> ReleaseResponse:
    """
    Give back held seats before their hold lapses
    """
    result = await engine.release(event_id, body.seat_ids, body.holder)
    return ReleaseResponse(
        event_id=event_id,
        released=result.released,
        not_released=result.not_released,
        reasons=result.reasons,
    )
