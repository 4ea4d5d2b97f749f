"""
Redis-backed availability store.

Each (event, seat) row is a hash; every conditional transition is a Lua
script, so the guard check and the write execute atomically on the server.
Timestamps are stored as epoch seconds and compared against the `now`
supplied by the engine, never against the Redis server clock.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from seatkeeper.config import settings
from seatkeeper.core.exceptions import StorageError
from seatkeeper.core.metrics import metrics_collector
from seatkeeper.core.redis import CircuitBreaker, CircuitOpenError
from seatkeeper.models.seat_status import SeatState
from seatkeeper.services.availability_store import AvailabilityStore, StatusRow

logger = logging.getLogger(__name__)


# KEYS[1] row, KEYS[2] event index; ARGV holder, until, seat_id
INSERT_HOLD_SCRIPT = """
if redis.call("EXISTS", KEYS[1]) == 1 then
    return 0
end
redis.call("HSET", KEYS[1], "status", "reserved", "holder", ARGV[1], "reserved_until", ARGV[2])
redis.call("SADD", KEYS[2], ARGV[3])
return 1
"""

# KEYS[1] row; ARGV holder, until, now
RECLAIM_HOLD_SCRIPT = """
local status = redis.call("HGET", KEYS[1], "status")
if not status then
    return 0
end
local reserved_until = tonumber(redis.call("HGET", KEYS[1], "reserved_until") or "0")
if status == "available" or (status == "reserved" and reserved_until <= tonumber(ARGV[3])) then
    redis.call("HSET", KEYS[1], "status", "reserved", "holder", ARGV[1], "reserved_until", ARGV[2])
    redis.call("HDEL", KEYS[1], "booking_reference")
    return 1
end
return 0
"""

# KEYS[1] row; ARGV holder, now, then field/value pairs to set
UPDATE_LIVE_HOLD_SCRIPT = """
if redis.call("HGET", KEYS[1], "status") ~= "reserved" then
    return 0
end
if redis.call("HGET", KEYS[1], "holder") ~= ARGV[1] then
    return 0
end
if tonumber(redis.call("HGET", KEYS[1], "reserved_until") or "0") <= tonumber(ARGV[2]) then
    return 0
end
for i = 3, #ARGV, 2 do
    redis.call("HSET", KEYS[1], ARGV[i], ARGV[i + 1])
end
if redis.call("HGET", KEYS[1], "status") == "booked" then
    redis.call("HDEL", KEYS[1], "reserved_until")
end
return 1
"""

# KEYS[1] row; ARGV holder ("" for privileged clear)
CLEAR_SCRIPT = """
local status = redis.call("HGET", KEYS[1], "status")
if ARGV[1] == "" then
    if status ~= "reserved" and status ~= "booked" then
        return 0
    end
else
    if status ~= "reserved" or redis.call("HGET", KEYS[1], "holder") ~= ARGV[1] then
        return 0
    end
end
redis.call("HSET", KEYS[1], "status", "available")
redis.call("HDEL", KEYS[1], "holder", "reserved_until", "booking_reference")
return 1
"""

# KEYS[1] event index; ARGV now, row key prefix
COMPACT_SCRIPT = """
local rewritten = 0
for _, seat_id in ipairs(redis.call("SMEMBERS", KEYS[1])) do
    local key = ARGV[2] .. seat_id
    if redis.call("HGET", key, "status") == "reserved"
        and tonumber(redis.call("HGET", key, "reserved_until") or "0") <= tonumber(ARGV[1]) then
        redis.call("HSET", key, "status", "available")
        redis.call("HDEL", key, "holder", "reserved_until", "booking_reference")
        rewritten = rewritten + 1
    end
end
return rewritten
"""


def _epoch(value: datetime) -> str:
    return repr(value.timestamp())


class RedisAvailabilityStore(AvailabilityStore):
    """Availability rows kept in Redis hashes, one per (event, seat)"""

    def __init__(self, client: redis.Redis, prefix: str = None, circuit_breaker: CircuitBreaker = None):
        self.client = client
        self.prefix = prefix or settings.REDIS_KEY_PREFIX
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    def _row_prefix(self, event_id: str) -> str:
        return f"{self.prefix}:status:{event_id}:"

    def _row_key(self, event_id: str, seat_id: str) -> str:
        return f"{self._row_prefix(event_id)}{seat_id}"

    def _index_key(self, event_id: str) -> str:
        return f"{self.prefix}:event:{event_id}:seats"

    async def _call(self, operation: str, func, *args):
        try:
            return await self.circuit_breaker.call(func, *args)
        except (RedisError, CircuitOpenError, OSError) as e:
            metrics_collector.record_storage_failure(operation)
            logger.error(f"Redis availability store {operation} failed: {type(e).__name__}: {e}")
            raise StorageError(operation) from e

    async def _eval(self, operation: str, script: str, keys: List[str], *args) -> int:
        result = await self._call(operation, self.client.eval, script, len(keys), *keys, *args)
        return int(result)

    @staticmethod
    def _to_row(event_id: str, seat_id: str, data: dict) -> Optional[StatusRow]:
        if not data:
            return None
        reserved_until = data.get("reserved_until")
        return StatusRow(
            event_id=event_id,
            seat_id=seat_id,
            status=SeatState(data["status"]),
            holder=data.get("holder"),
            reserved_until=(
                datetime.fromtimestamp(float(reserved_until), tz=timezone.utc)
                if reserved_until else None
            ),
            booking_reference=data.get("booking_reference"),
        )

    async def _hgetall_many(self, operation: str, event_id: str, seat_ids: List[str]) -> List[StatusRow]:
        async def read_all():
            pipeline = self.client.pipeline(transaction=False)
            for seat_id in seat_ids:
                pipeline.hgetall(self._row_key(event_id, seat_id))
            return await pipeline.execute()

        results = await self._call(operation, read_all)
        rows = []
        for seat_id, data in zip(seat_ids, results):
            row = self._to_row(event_id, seat_id, data)
            if row is not None:
                rows.append(row)
        return rows

    async def fetch(self, event_id: str, seat_ids: Iterable[str]) -> Dict[str, StatusRow]:
        seat_ids = list(seat_ids)
        if not seat_ids:
            return {}
        rows = await self._hgetall_many("fetch", event_id, seat_ids)
        return {row.seat_id: row for row in rows}

    async def insert_hold(self, event_id: str, seat_id: str, holder: str, until: datetime) -> bool:
        return await self._eval(
            "insert_hold", INSERT_HOLD_SCRIPT,
            [self._row_key(event_id, seat_id), self._index_key(event_id)],
            holder, _epoch(until), seat_id,
        ) == 1

    async def reclaim_hold(self, event_id: str, seat_id: str, holder: str, until: datetime, now: datetime) -> bool:
        return await self._eval(
            "reclaim_hold", RECLAIM_HOLD_SCRIPT,
            [self._row_key(event_id, seat_id)],
            holder, _epoch(until), _epoch(now),
        ) == 1

    async def refresh_hold(self, event_id: str, seat_id: str, holder: str, until: datetime, now: datetime) -> bool:
        return await self._eval(
            "refresh_hold", UPDATE_LIVE_HOLD_SCRIPT,
            [self._row_key(event_id, seat_id)],
            holder, _epoch(now), "reserved_until", _epoch(until),
        ) == 1

    async def book(self, event_id: str, seat_id: str, holder: str, reference: str, now: datetime) -> bool:
        return await self._eval(
            "book", UPDATE_LIVE_HOLD_SCRIPT,
            [self._row_key(event_id, seat_id)],
            holder, _epoch(now), "status", SeatState.BOOKED.value, "booking_reference", reference,
        ) == 1

    async def clear_hold(self, event_id: str, seat_id: str, holder: str) -> bool:
        return await self._eval(
            "clear_hold", CLEAR_SCRIPT, [self._row_key(event_id, seat_id)], holder
        ) == 1

    async def force_clear(self, event_id: str, seat_id: str) -> bool:
        return await self._eval(
            "force_clear", CLEAR_SCRIPT, [self._row_key(event_id, seat_id)], ""
        ) == 1

    async def rows_for_event(self, event_id: str, holder: Optional[str] = None) -> List[StatusRow]:
        seat_ids = sorted(await self._call("rows_for_event", self.client.smembers, self._index_key(event_id)))
        rows = await self._hgetall_many("rows_for_event", event_id, seat_ids)
        if holder is not None:
            rows = [row for row in rows if row.holder == holder]
        return rows

    async def _indexed_events(self) -> List[str]:
        async def scan_indexes():
            pattern = f"{self.prefix}:event:*:seats"
            return [key async for key in self.client.scan_iter(match=pattern)]

        start = len(f"{self.prefix}:event:")
        return [key[start:-len(":seats")] for key in await self._call("compact", scan_indexes)]

    async def compact(self, now: datetime, event_id: Optional[str] = None) -> int:
        event_ids = [event_id] if event_id is not None else await self._indexed_events()
        rewritten = 0
        for current in event_ids:
            rewritten += await self._eval(
                "compact", COMPACT_SCRIPT, [self._index_key(current)],
                _epoch(now), self._row_prefix(current),
            )
        return rewritten
