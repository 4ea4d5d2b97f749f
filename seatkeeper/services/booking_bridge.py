"""
Booking bridge: hands confirmed bookings to an external order system.

A sink receives facts about seats that have already been booked. It returns
nothing the reservation engine depends on, and a failing sink never changes
the outcome of a confirmation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Tuple
import json
import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmedBooking:
    event_id: str
    holder: str
    booking_reference: str
    seat_ids: Tuple[str, ...]
    confirmed_at: datetime

    def to_message(self) -> dict:
        message = asdict(self)
        message["seat_ids"] = list(self.seat_ids)
        message["confirmed_at"] = self.confirmed_at.isoformat()
        return message


class BookingSink(ABC):
    @abstractmethod
    async def booking_confirmed(self, booking: ConfirmedBooking) -> None:
        ...


class LoggingBookingSink(BookingSink):
    """Default sink: records the booking in the application log"""

    async def booking_confirmed(self, booking: ConfirmedBooking) -> None:
        logger.info(
            f"Booking {booking.booking_reference} confirmed for {booking.holder}: "
            f"{len(booking.seat_ids)} seats at event {booking.event_id}",
            extra={"booking": booking.to_message()},
        )


class RedisBookingPublisher(BookingSink):
    """Publishes confirmed bookings as JSON on a Redis pub/sub channel"""

    def __init__(self, client: redis.Redis, channel: str):
        self.client = client
        self.channel = channel

    async def booking_confirmed(self, booking: ConfirmedBooking) -> None:
        receivers = await self.client.publish(self.channel, json.dumps(booking.to_message()))
        logger.debug(f"Published booking {booking.booking_reference} to {receivers} subscribers")
