"""
Reservation engine: seat status state machine and race-safe hold acquisition.

States per (event, seat):

    Available --acquire--> Reserved(holder, until) --confirm--> Booked(reference)
        ^                     |   ^
        |                     |   +-- re-hold by the same holder refreshes `until`
        +--expiry / release---+
    Booked --force_release--> Available   (privileged override only)

Blocked is an overlay derived from the catalog and is never stored.

The engine holds no locks and keeps no in-memory timers. Each transition is
one conditional write to the availability store, guarded by the state the
engine observed; if the guard no longer matches, another caller won and the
seat is reported as contested. Expiry is evaluated lazily by comparing
`reserved_until` with the clock at the moment of evaluation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union
import logging

from seatkeeper.config import settings
from seatkeeper.core.exceptions import ConflictReason, NotFoundError, ValidationError
from seatkeeper.core.metrics import metrics_collector
from seatkeeper.models.seat_status import SeatState
from seatkeeper.services.availability_store import AvailabilityStore, StatusRow, ensure_utc
from seatkeeper.services.booking_bridge import BookingSink, ConfirmedBooking
from seatkeeper.services.catalog_service import SeatCatalog, SeatRecord

logger = logging.getLogger(__name__)

Identifier = Union[int, str]

MAX_ID_LENGTH = 64
MAX_HOLDER_LENGTH = 128


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HoldResult:
    holder: Optional[str] = None
    granted: List[str] = field(default_factory=list)
    denied: List[str] = field(default_factory=list)
    reasons: Dict[str, ConflictReason] = field(default_factory=dict)
    expires_at: Optional[datetime] = None


@dataclass
class ConfirmResult:
    holder: Optional[str] = None
    confirmed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    reasons: Dict[str, ConflictReason] = field(default_factory=dict)
    booking_reference: Optional[str] = None


@dataclass
class ReleaseResult:
    released: List[str] = field(default_factory=list)
    not_released: List[str] = field(default_factory=list)
    reasons: Dict[str, ConflictReason] = field(default_factory=dict)


@dataclass(frozen=True)
class HoldView:
    seat_id: str
    holder: str
    reserved_until: datetime


def normalize_id(value: Identifier, field_name: str, max_length: int = MAX_ID_LENGTH) -> str:
    """Opaque int/str handle -> canonical string; rejects empty, zero and negative ids"""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required", field=field_name)
    if isinstance(value, int):
        if value <= 0:
            raise ValidationError(f"{field_name} must be a positive integer", field=field_name)
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field_name} must not be empty", field=field_name)
        if len(value) > max_length:
            raise ValidationError(f"{field_name} is longer than {max_length} characters", field=field_name)
        return value
    raise ValidationError(f"{field_name} must be an integer or string identifier", field=field_name)


def normalize_ids(values: Iterable[Identifier], field_name: str, limit: int) -> List[str]:
    """Normalize a seat list, dropping duplicates but keeping request order"""
    if values is None or isinstance(values, (str, bytes)):
        raise ValidationError(f"{field_name} must be a list of identifiers", field=field_name)
    normalized = []
    seen = set()
    for value in values:
        seat_id = normalize_id(value, field_name)
        if seat_id in seen:
            continue
        seen.add(seat_id)
        normalized.append(seat_id)
        if len(normalized) > limit:
            raise ValidationError(f"At most {limit} seats per request", field=field_name)
    if not normalized:
        raise ValidationError(f"{field_name} must contain at least one seat", field=field_name)
    return normalized


class ReservationEngine:
    """
    resolve / acquire / confirm / release over an AvailabilityStore.

    Multi-seat requests are never atomic as a set: every seat is evaluated
    and written independently and the result itemizes each one.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        catalog: SeatCatalog,
        booking_sink: Optional[BookingSink] = None,
        clock: Callable[[], datetime] = utcnow,
        default_ttl_minutes: Optional[float] = None,
        max_ttl_minutes: Optional[float] = None,
        max_seats_per_request: Optional[int] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.booking_sink = booking_sink
        self.clock = clock
        self.default_ttl_minutes = default_ttl_minutes or settings.HOLD_TTL_MINUTES
        self.max_ttl_minutes = max_ttl_minutes or settings.HOLD_TTL_MAX_MINUTES
        self.max_seats_per_request = max_seats_per_request or settings.MAX_SEATS_PER_REQUEST

    # Validation

    def _now(self) -> datetime:
        # Stores compare instants as UTC; SQLite keeps no offset
        return ensure_utc(self.clock())

    def _ttl(self, ttl_minutes: Optional[float]) -> timedelta:
        if ttl_minutes is None:
            ttl_minutes = self.default_ttl_minutes
        if isinstance(ttl_minutes, bool) or not isinstance(ttl_minutes, (int, float)):
            raise ValidationError("ttl_minutes must be a number", field="ttl_minutes")
        if not 0 < ttl_minutes <= self.max_ttl_minutes:
            raise ValidationError(
                f"ttl_minutes must be between 0 and {self.max_ttl_minutes}", field="ttl_minutes"
            )
        return timedelta(minutes=ttl_minutes)

    def _seat_ids(self, seat_ids: Iterable[Identifier]) -> List[str]:
        return normalize_ids(seat_ids, "seat_ids", self.max_seats_per_request)

    # Availability resolution

    async def resolve_availability(self, event: Identifier, seat_ids: Iterable[Identifier]) -> Dict[str, SeatState]:
        """
        Current state of each seat. Pure read: lapsed holds resolve to
        Available without being rewritten.
        """
        event_id = normalize_id(event, "event_id")
        seats = self._seat_ids(seat_ids)

        async with metrics_collector.track_operation("resolve"):
            now = self._now()
            venue_id = await self.catalog.venue_for_event(event_id)
            records = await self.catalog.seats_by_id(venue_id, seats)
            missing = [seat_id for seat_id in seats if seat_id not in records]
            if missing:
                raise NotFoundError("Seat", ", ".join(missing), details={"seat_ids": missing})

            blocked = await self.catalog.blocked_seats(event_id, records.values(), now)
            rows = await self.store.fetch(event_id, seats)

        return {
            seat_id: self._resolve_one(seat_id, blocked, rows.get(seat_id), now)
            for seat_id in seats
        }

    @staticmethod
    def _resolve_one(seat_id: str, blocked: set, row: Optional[StatusRow], now: datetime) -> SeatState:
        if seat_id in blocked:
            return SeatState.BLOCKED
        if row is None:
            return SeatState.AVAILABLE
        return row.effective_state(now)

    # Hold acquisition

    async def acquire_hold(
        self,
        event: Identifier,
        venue: Identifier,
        seat_ids: Iterable[Identifier],
        holder: Identifier,
        ttl_minutes: Optional[float] = None,
    ) -> HoldResult:
        """
        Try to hold every requested seat for `holder`.

        Seats are granted or denied independently; a contested seat never
        fails the others. Re-holding a seat the holder already owns extends it.
        """
        event_id = normalize_id(event, "event_id")
        venue_id = normalize_id(venue, "venue_id")
        seats = self._seat_ids(seat_ids)
        holder_id = normalize_id(holder, "holder", MAX_HOLDER_LENGTH)
        ttl = self._ttl(ttl_minutes)

        async with metrics_collector.track_operation("acquire_hold"):
            event_venue = await self.catalog.venue_for_event(event_id)
            if event_venue != venue_id:
                raise ValidationError(f"Event {event_id} does not take place at venue {venue_id}", field="venue_id")

            now = self._now()
            until = now + ttl
            records = await self.catalog.seats_by_id(venue_id, seats)
            blocked = await self.catalog.blocked_seats(event_id, records.values(), now)
            rows = await self.store.fetch(event_id, seats)

            result = HoldResult(holder=holder_id)
            for seat_id in seats:
                reason = await self._try_hold(
                    event_id, seat_id, holder_id, records, blocked, rows.get(seat_id), now, until
                )
                if reason is None:
                    result.granted.append(seat_id)
                else:
                    result.denied.append(seat_id)
                    result.reasons[seat_id] = reason

        if result.granted:
            result.expires_at = until
        metrics_collector.record_outcomes("acquire_hold", result.granted, result.reasons)
        logger.info(
            f"Hold for {holder_id} at event {event_id}: granted {result.granted}, denied {result.denied}",
            extra={"event_id": event_id, "holder": holder_id,
                   "reasons": {seat: reason.value for seat, reason in result.reasons.items()}},
        )
        return result

    async def _try_hold(
        self,
        event_id: str,
        seat_id: str,
        holder: str,
        records: Dict[str, SeatRecord],
        blocked: set,
        row: Optional[StatusRow],
        now: datetime,
        until: datetime,
    ) -> Optional[ConflictReason]:
        if seat_id not in records:
            return ConflictReason.NOT_FOUND
        if seat_id in blocked:
            return ConflictReason.BLOCKED

        if row is None:
            won = await self.store.insert_hold(event_id, seat_id, holder, until)
        else:
            state = row.effective_state(now)
            if state == SeatState.BOOKED:
                return ConflictReason.BOOKED
            if state == SeatState.RESERVED:
                if row.holder != holder:
                    return ConflictReason.HELD_BY_OTHER
                won = await self.store.refresh_hold(event_id, seat_id, holder, until, now)
            else:
                won = await self.store.reclaim_hold(event_id, seat_id, holder, until, now)

        if not won:
            logger.debug(f"Seat {seat_id} at event {event_id} changed under {holder}; denying")
            return ConflictReason.CONTESTED
        return None

    async def extend_holds(self, event: Identifier, holder: Identifier, ttl_minutes: Optional[float] = None) -> HoldResult:
        """Refresh every live hold `holder` has at the event"""
        event_id = normalize_id(event, "event_id")
        holder_id = normalize_id(holder, "holder", MAX_HOLDER_LENGTH)
        ttl = self._ttl(ttl_minutes)

        async with metrics_collector.track_operation("extend_holds"):
            await self.catalog.venue_for_event(event_id)
            now = self._now()
            until = now + ttl
            result = HoldResult(holder=holder_id)
            for row in await self.store.rows_for_event(event_id, holder_id):
                if not row.is_live_hold(now):
                    continue
                if await self.store.refresh_hold(event_id, row.seat_id, holder_id, until, now):
                    result.granted.append(row.seat_id)
                else:
                    result.denied.append(row.seat_id)
                    result.reasons[row.seat_id] = ConflictReason.CONTESTED

        if result.granted:
            result.expires_at = until
        metrics_collector.record_outcomes("extend_holds", result.granted, result.reasons)
        logger.info(f"Extended {len(result.granted)} holds for {holder_id} at event {event_id}")
        return result

    async def holder_holds(self, event: Identifier, holder: Identifier) -> List[HoldView]:
        event_id = normalize_id(event, "event_id")
        holder_id = normalize_id(holder, "holder", MAX_HOLDER_LENGTH)
        await self.catalog.venue_for_event(event_id)

        now = self._now()
        return [
            HoldView(seat_id=row.seat_id, holder=row.holder, reserved_until=row.reserved_until)
            for row in await self.store.rows_for_event(event_id, holder_id)
            if row.is_live_hold(now)
        ]

    # Confirmation

    async def confirm(
        self,
        event: Identifier,
        seat_ids: Iterable[Identifier],
        holder: Identifier,
        booking_reference: str,
    ) -> ConfirmResult:
        """
        Book seats the holder currently holds. Seats that are not live holds
        of `holder` are reported as failed; nothing is rolled back, so undoing
        a partial confirmation is up to the caller.
        """
        event_id = normalize_id(event, "event_id")
        seats = self._seat_ids(seat_ids)
        holder_id = normalize_id(holder, "holder", MAX_HOLDER_LENGTH)
        if not isinstance(booking_reference, str):
            raise ValidationError("booking_reference must be a string", field="booking_reference")
        reference = normalize_id(booking_reference, "booking_reference", MAX_HOLDER_LENGTH)

        async with metrics_collector.track_operation("confirm"):
            await self.catalog.venue_for_event(event_id)
            now = self._now()
            rows = await self.store.fetch(event_id, seats)

            result = ConfirmResult(holder=holder_id, booking_reference=reference)
            for seat_id in seats:
                reason = self._confirm_precondition(rows.get(seat_id), holder_id, now)
                if reason is None and not await self.store.book(event_id, seat_id, holder_id, reference, now):
                    reason = ConflictReason.CONTESTED
                if reason is None:
                    result.confirmed.append(seat_id)
                else:
                    result.failed.append(seat_id)
                    result.reasons[seat_id] = reason

        metrics_collector.record_outcomes("confirm", result.confirmed, result.reasons)
        logger.info(
            f"Confirm {reference} for {holder_id} at event {event_id}: "
            f"confirmed {result.confirmed}, failed {result.failed}"
        )
        if result.confirmed:
            await self._notify(ConfirmedBooking(
                event_id=event_id,
                holder=holder_id,
                booking_reference=reference,
                seat_ids=tuple(result.confirmed),
                confirmed_at=now,
            ))
        return result

    @staticmethod
    def _confirm_precondition(row: Optional[StatusRow], holder: str, now: datetime) -> Optional[ConflictReason]:
        if row is None or row.status == SeatState.AVAILABLE:
            return ConflictReason.NOT_HELD
        if row.status == SeatState.BOOKED:
            return ConflictReason.BOOKED
        if row.holder != holder:
            return ConflictReason.HELD_BY_OTHER if row.is_live_hold(now) else ConflictReason.NOT_HELD
        if not row.is_live_hold(now):
            return ConflictReason.EXPIRED
        return None

    async def _notify(self, booking: ConfirmedBooking) -> None:
        if self.booking_sink is None:
            return
        try:
            await self.booking_sink.booking_confirmed(booking)
        except Exception:
            # Seats are already booked at this point
            logger.exception(f"Booking sink failed for {booking.booking_reference}")

    # Release

    async def release(self, event: Identifier, seat_ids: Iterable[Identifier], holder: Identifier) -> ReleaseResult:
        """
        Drop the holder's holds right away, expired or not. Booked seats and
        seats held by someone else are left alone and reported.
        """
        event_id = normalize_id(event, "event_id")
        seats = self._seat_ids(seat_ids)
        holder_id = normalize_id(holder, "holder", MAX_HOLDER_LENGTH)

        async with metrics_collector.track_operation("release"):
            await self.catalog.venue_for_event(event_id)
            now = self._now()
            rows = await self.store.fetch(event_id, seats)

            result = ReleaseResult()
            for seat_id in seats:
                reason = self._release_precondition(rows.get(seat_id), holder_id, now)
                if reason is None and not await self.store.clear_hold(event_id, seat_id, holder_id):
                    reason = ConflictReason.CONTESTED
                if reason is None:
                    result.released.append(seat_id)
                else:
                    result.not_released.append(seat_id)
                    result.reasons[seat_id] = reason

        metrics_collector.record_outcomes("release", result.released, result.reasons)
        logger.info(
            f"Release for {holder_id} at event {event_id}: "
            f"released {result.released}, kept {result.not_released}"
        )
        return result

    @staticmethod
    def _release_precondition(row: Optional[StatusRow], holder: str, now: datetime) -> Optional[ConflictReason]:
        if row is None or row.status == SeatState.AVAILABLE:
            return ConflictReason.NOT_HELD
        if row.status == SeatState.BOOKED:
            return ConflictReason.BOOKED
        if row.holder != holder:
            return ConflictReason.HELD_BY_OTHER if row.is_live_hold(now) else ConflictReason.NOT_HELD
        return None

    async def force_release(self, event: Identifier, seat_ids: Iterable[Identifier], actor: Identifier) -> ReleaseResult:
        """
        Privileged override: frees held or booked seats regardless of holder.
        Callers must have authorized `actor` already.
        """
        event_id = normalize_id(event, "event_id")
        seats = self._seat_ids(seat_ids)
        actor_id = normalize_id(actor, "actor", MAX_HOLDER_LENGTH)

        async with metrics_collector.track_operation("force_release"):
            await self.catalog.venue_for_event(event_id)
            rows = await self.store.fetch(event_id, seats)

            result = ReleaseResult()
            for seat_id in seats:
                if await self.store.force_clear(event_id, seat_id):
                    result.released.append(seat_id)
                    row = rows.get(seat_id)
                    logger.warning(
                        f"{actor_id} force-released seat {seat_id} at event {event_id}",
                        extra={
                            "previous_status": row.status.value if row else None,
                            "previous_holder": row.holder if row else None,
                            "booking_reference": row.booking_reference if row else None,
                        },
                    )
                else:
                    result.not_released.append(seat_id)
                    result.reasons[seat_id] = ConflictReason.NOT_HELD

        metrics_collector.record_outcomes("force_release", result.released, result.reasons)
        return result

    # Housekeeping

    async def hold_stats(self, event: Identifier) -> Dict[str, int]:
        event_id = normalize_id(event, "event_id")
        await self.catalog.venue_for_event(event_id)

        now = self._now()
        stats = {"total": 0, "active": 0, "expired": 0, "booked": 0}
        for row in await self.store.rows_for_event(event_id):
            if row.status == SeatState.AVAILABLE:
                continue
            stats["total"] += 1
            if row.status == SeatState.BOOKED:
                stats["booked"] += 1
            elif row.is_live_hold(now):
                stats["active"] += 1
            else:
                stats["expired"] += 1
        return stats

    async def compact_expired(self, event: Optional[Identifier] = None) -> int:
        """Storage hygiene only: correctness never depends on this running"""
        event_id = normalize_id(event, "event_id") if event is not None else None
        rewritten = await self.store.compact(self._now(), event_id)
        metrics_collector.record_compaction(rewritten)
        if rewritten:
            logger.info(f"Compacted {rewritten} expired holds" + (f" at event {event_id}" if event_id else ""))
        return rewritten
