"""
Seat map endpoint
"""

from fastapi import APIRouter, Depends

from seatkeeper.core.dependencies import get_projector
from seatkeeper.schemas.seat import SeatMapResponse, SeatViewResponse
from seatkeeper.services.availability_projector import AvailabilityProjector

router = APIRouter()


@router.get("/{event_id}/seats", response_model=SeatMapResponse)
async def seat_map(
    event_id: str,
    projector: AvailabilityProjector = Depends(get_projector)
) -> SeatMapResponse:
    """
    Every seat of the event's venue with pricing and current status
    """
    views, summary = await projector.seat_map(event_id)
    return SeatMapResponse(
        event_id=event_id,
        seats=[SeatViewResponse.model_validate(view) for view in views],
        summary=summary,
    )
