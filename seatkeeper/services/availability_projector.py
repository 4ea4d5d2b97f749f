"""
Availability projector: display rows for a seat map.

Joins catalog records, pricing tiers and resolved seat states. Only reads;
holding and booking go through the reservation engine.
"""

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from seatkeeper.models.seat_status import SeatState
from seatkeeper.services.catalog_service import SeatCatalog
from seatkeeper.services.pricing_service import PricingService, pricing_service
from seatkeeper.services.reservation_engine import ReservationEngine, normalize_id


@dataclass(frozen=True)
class SeatView:
    seat_id: str
    section: str
    row: str
    number: int
    x: float
    y: float
    tier: str
    tier_name: Optional[str]
    price: Optional[Decimal]
    color: Optional[str]
    accessible: bool
    status: SeatState


class AvailabilityProjector:
    def __init__(self, engine: ReservationEngine, catalog: SeatCatalog, pricing: PricingService = None):
        self.engine = engine
        self.catalog = catalog
        self.pricing = pricing or pricing_service

    async def seat_map(self, event) -> Tuple[List[SeatView], Dict[str, int]]:
        """All seats of the event's venue with their current status, plus counts per status"""
        event_id = normalize_id(event, "event_id")
        venue_id = await self.catalog.venue_for_event(event_id)
        records = await self.catalog.lookup(venue_id)

        states = {}
        # Resolve in request-sized chunks so large venues stay within the per-request limit
        chunk = self.engine.max_seats_per_request
        for start in range(0, len(records), chunk):
            seat_ids = [record.seat_id for record in records[start:start + chunk]]
            states.update(await self.engine.resolve_availability(event_id, seat_ids))

        views = []
        for record in records:
            tier = self.pricing.lookup(record.pricing_tier)
            views.append(SeatView(
                seat_id=record.seat_id,
                section=record.section,
                row=record.row,
                number=record.number,
                x=record.x,
                y=record.y,
                tier=record.pricing_tier,
                tier_name=tier.name if tier else None,
                price=tier.price if tier else None,
                color=tier.display_color if tier else None,
                accessible=record.is_accessible,
                status=states[record.seat_id],
            ))

        summary = Counter(view.status.value for view in views)
        return views, {state.value: summary.get(state.value, 0) for state in SeatState}
