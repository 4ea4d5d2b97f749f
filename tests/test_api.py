"""
HTTP endpoint tests over httpx ASGITransport
"""

from unittest.mock import AsyncMock

import pytest

from seatkeeper.models.seat_status import SeatState
from seatkeeper.services.availability_store import AvailabilityStore
from seatkeeper.services.catalog_service import SeatCatalog
from seatkeeper.services.reservation_engine import ReservationEngine

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


@pytest.mark.integration
@pytest.mark.asyncio
class TestReservationEndpoints:

    async def test_hold_confirm_release_flow(self, client):
        response = await client.post("/api/v1/events/1/holds", json={
            "venue_id": 1,
            "seat_ids": ["A1", "A2"],
            "holder": "holderX",
            "ttl_minutes": 15,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["granted"] == ["A1", "A2"]
        assert data["denied"] == []
        assert data["holder"] == "holderX"
        assert data["expires_at"].startswith("2026-03-14T19:15:00")

        response = await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1",
            "seat_ids": ["A2", "A3"],
            "holder": "holderY",
        })
        data = response.json()
        assert data["granted"] == ["A3"]
        assert data["reasons"] == {"A2": "held_by_other"}

        response = await client.post("/api/v1/events/1/confirm", json={
            "seat_ids": ["A1", "A2"],
            "holder": "holderX",
            "booking_reference": "R1",
        })
        assert response.status_code == 200
        assert response.json()["confirmed"] == ["A1", "A2"]

        response = await client.post("/api/v1/events/1/release", json={
            "seat_ids": ["A1"],
            "holder": "holderX",
        })
        assert response.status_code == 200
        assert response.json() == {
            "event_id": "1",
            "released": [],
            "not_released": ["A1"],
            "reasons": {"A1": "booked"},
        }

        response = await client.post("/api/v1/events/1/availability", json={"seat_ids": ["A1", "A2", "A3"]})
        assert response.status_code == 200
        assert response.json()["seats"] == {"A1": "booked", "A2": "booked", "A3": "reserved"}

    async def test_list_and_extend_holds(self, client, clock):
        await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": ["A1"], "holder": "alice", "ttl_minutes": 5,
        })
        clock.advance(minutes=3)

        response = await client.post("/api/v1/events/1/holds/extend", json={"holder": "alice", "ttl_minutes": 10})
        assert response.json()["granted"] == ["A1"]

        response = await client.get("/api/v1/events/1/holds", params={"holder": "alice"})
        assert response.status_code == 200
        holds = response.json()["holds"]
        assert [hold["seat_id"] for hold in holds] == ["A1"]
        assert holds[0]["reserved_until"].startswith("2026-03-14T19:13:00")

    async def test_unknown_event_is_404(self, client):
        response = await client.post("/api/v1/events/404/availability", json={"seat_ids": ["A1"]})
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    async def test_invalid_arguments_are_400(self, client):
        response = await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": [], "holder": "alice",
        })
        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "VALIDATION_ERROR",
            "message": "seat_ids must contain at least one seat",
            "details": {"field": "seat_ids"},
        }

    async def test_malformed_body_is_400(self, client):
        response = await client.post("/api/v1/events/1/confirm", json={"seat_ids": ["A1"]})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_seat_map(self, client):
        await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": ["A1"], "holder": "alice",
        })

        response = await client.get("/api/v1/events/1/seats")

        assert response.status_code == 200
        data = response.json()
        assert [seat["seat_id"] for seat in data["seats"]] == ["A1", "A2", "A3", "B1", "B2", "B3"]
        assert data["seats"][0]["status"] == "reserved"
        assert data["seats"][0]["tier_name"] == "VIP"
        assert data["seats"][3]["accessible"] is True
        assert data["summary"] == {"available": 3, "reserved": 1, "booked": 0, "blocked": 2}


@pytest.mark.integration
@pytest.mark.asyncio
class TestAdminEndpoints:

    async def test_requires_admin_key(self, client):
        response = await client.get("/api/v1/admin/events/1/stats")
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"

        response = await client.get("/api/v1/admin/events/1/stats", headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 403

    async def test_force_release_and_stats(self, client):
        await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": ["A1", "A2"], "holder": "alice",
        })
        await client.post("/api/v1/events/1/confirm", json={
            "seat_ids": ["A1"], "holder": "alice", "booking_reference": "R1",
        })

        response = await client.get("/api/v1/admin/events/1/stats", headers=ADMIN_HEADERS)
        assert response.json() == {"event_id": "1", "total": 2, "active": 1, "expired": 0, "booked": 1}

        response = await client.post(
            "/api/v1/admin/events/1/force-release",
            json={"seat_ids": ["A1"], "actor": "box-office"},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["released"] == ["A1"]

        response = await client.post("/api/v1/events/1/availability", json={"seat_ids": ["A1"]})
        assert response.json()["seats"] == {"A1": "available"}

    async def test_compact(self, client, clock):
        await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": ["A1"], "holder": "alice", "ttl_minutes": 1,
        })
        clock.advance(minutes=2)

        response = await client.post("/api/v1/admin/compact", json={"event_id": 1}, headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"compacted": 1}


@pytest.mark.asyncio
class TestHealthEndpoints:

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    async def test_readiness(self, client):
        response = await client.get("/api/v1/health/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": True}

    async def test_metrics_exposed(self, client):
        await client.get("/api/v1/health/live")
        response = await client.get("/metrics/")
        assert response.status_code == 200
        assert "seatkeeper_requests_total" in response.text


@pytest.mark.integration
@pytest.mark.asyncio
class TestResponsesMatchStoredState:

    async def test_long_holder_hold_and_confirm(self, client, store):
        holder = "h" * 100

        response = await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": ["A1"], "holder": holder,
        })
        assert response.status_code == 200
        assert response.json()["holder"] == holder
        assert response.json()["granted"] == ["A1"]

        response = await client.post("/api/v1/events/1/holds/extend", json={"holder": holder})
        assert response.status_code == 200
        assert response.json()["granted"] == ["A1"]

        response = await client.post("/api/v1/events/1/confirm", json={
            "seat_ids": ["A1"], "holder": holder, "booking_reference": "R1",
        })
        assert response.status_code == 200
        assert response.json()["holder"] == holder
        assert response.json()["confirmed"] == ["A1"]

        row = (await store.fetch("1", ["A1"]))["A1"]
        assert row.status == SeatState.BOOKED
        assert row.holder == holder

    async def test_rejected_request_never_reaches_the_store(self, client, clock):
        from seatkeeper.main import app
        from seatkeeper.core.dependencies import get_reservation_engine

        store = AsyncMock(spec=AvailabilityStore)
        catalog = AsyncMock(spec=SeatCatalog)
        app.dependency_overrides[get_reservation_engine] = lambda: ReservationEngine(
            store, catalog, clock=clock, max_seats_per_request=10,
        )

        response = await client.post("/api/v1/events/1/holds", json={
            "venue_id": "1", "seat_ids": [f"S{i}" for i in range(500)], "holder": "alice",
        })

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        catalog.venue_for_event.assert_not_called()
        store.fetch.assert_not_called()
        store.insert_hold.assert_not_called()
