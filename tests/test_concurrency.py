"""
Concurrency tests: racing callers for the same seat
Every race must end with exactly one winner and nobody else holding the seat.
"""

import asyncio

import pytest

from seatkeeper.core.exceptions import ConflictReason
from seatkeeper.models.seat_status import SeatState

RACERS = 10


@pytest.mark.concurrency
@pytest.mark.asyncio
class TestSeatHoldConcurrency:
    """Race N acquisitions and check the at-most-one-holder invariant"""

    async def test_racing_first_holds_grant_exactly_one(self, engine, store):
        results = await asyncio.gather(*[
            engine.acquire_hold("1", "1", ["A1"], f"holder-{i}")
            for i in range(RACERS)
        ])

        winners = [i for i, result in enumerate(results) if result.granted == ["A1"]]
        assert len(winners) == 1

        for result in results:
            if not result.granted:
                assert result.reasons["A1"] in (ConflictReason.CONTESTED, ConflictReason.HELD_BY_OTHER)

        rows = await store.fetch("1", ["A1"])
        assert rows["A1"].holder == f"holder-{winners[0]}"

    async def test_racing_reclaims_of_expired_hold_grant_exactly_one(self, engine, store, clock):
        await engine.acquire_hold("1", "1", ["A2"], "early-bird", ttl_minutes=1)
        clock.advance(minutes=2)

        results = await asyncio.gather(*[
            engine.acquire_hold("1", "1", ["A2"], f"holder-{i}")
            for i in range(RACERS)
        ])

        granted = [result for result in results if result.granted]
        assert len(granted) == 1
        rows = await store.fetch("1", ["A2"])
        assert rows["A2"].holder != "early-bird"

    async def test_overlapping_batches_never_share_a_seat(self, engine, store):
        batches = [
            ["A1", "A2"],
            ["A2", "A3"],
            ["A3", "A1"],
            ["A1", "A2", "A3"],
        ]
        results = await asyncio.gather(*[
            engine.acquire_hold("1", "1", seats, f"holder-{i}")
            for i, seats in enumerate(batches)
        ])

        owners = {}
        for i, result in enumerate(results):
            for seat_id in result.granted:
                assert seat_id not in owners, f"{seat_id} granted twice"
                owners[seat_id] = f"holder-{i}"

        assert set(owners) == {"A1", "A2", "A3"}
        rows = await store.fetch("1", ["A1", "A2", "A3"])
        assert {seat_id: row.holder for seat_id, row in rows.items()} == owners

    async def test_racing_confirm_and_force_release(self, engine):
        await engine.acquire_hold("1", "1", ["A1"], "alice")

        confirm_result, release_result = await asyncio.gather(
            engine.confirm("1", ["A1"], "alice", "R1"),
            engine.force_release("1", ["A1"], "box-office"),
        )

        # The override clears both Reserved and Booked, so it wins in either order
        assert release_result.released == ["A1"]
        if not confirm_result.confirmed:
            assert confirm_result.reasons["A1"] in (ConflictReason.CONTESTED, ConflictReason.NOT_HELD)
        states = await engine.resolve_availability("1", ["A1"])
        assert states["A1"] == SeatState.AVAILABLE
