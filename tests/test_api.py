"""
Integration tests for the REST API endpoints.

The app is built around an in-memory ``LocalLedgerAdapter`` so no database
or Redis is needed; identities travel in the ``X-Identity`` header.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ridesync.api.app import create_app
from ridesync.api.middleware import limiter
from ridesync.infrastructure.local_ledger import LocalLedgerAdapter
from ridesync.infrastructure.remote_ledger import RemoteLedgerAdapter
from tests.fakes import FakeLedgerClient

REQUESTER = {"X-Identity": "0xrequester"}
PROVIDER = {"X-Identity": "0xprovider"}
RIVAL = {"X-Identity": "0xrival"}

RIDE_BODY = {
    "pickup": {"name": "NTU Main Library", "latitude": 25.0174, "longitude": 121.5405},
    "dropoff": {"name": "Gongguan MRT", "latitude": 25.0147, "longitude": 121.5340},
    "amount": "0.001",
}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client():
    """AsyncClient over a fresh in-memory ledger."""
    limiter.reset()
    app = create_app(LocalLedgerAdapter())
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _create(client: AsyncClient) -> int:
    resp = await client.post("/api/v1/rides", json=RIDE_BODY, headers=REQUESTER)
    assert resp.status_code == 201
    return resp.json()["id"]


async def _step(client: AsyncClient, ride_id: int, action: str, headers, **kwargs):
    return await client.post(
        f"/api/v1/rides/{ride_id}/{action}", headers=headers, **kwargs
    )


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["backend"] == "local"


@pytest.mark.asyncio
async def test_health_reports_injected_backend():
    app = create_app(RemoteLedgerAdapter(FakeLedgerClient()))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.get("/api/v1/admin/health")
    assert resp.json()["backend"] == "remote"


@pytest.mark.asyncio
async def test_create_ride_returns_201(client: AsyncClient):
    resp = await client.post("/api/v1/rides", json=RIDE_BODY, headers=REQUESTER)
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "CREATED"
    assert data["requester_id"] == "0xrequester"
    assert data["provider_id"] is None
    assert data["pickup"]["name"] == "NTU Main Library"
    assert float(data["amount"]) == 0.001


@pytest.mark.asyncio
async def test_create_requires_identity(client: AsyncClient):
    resp = await client.post("/api/v1/rides", json=RIDE_BODY)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_rejects_negative_amount(client: AsyncClient):
    body = {**RIDE_BODY, "amount": "-1"}
    resp = await client.post("/api/v1/rides", json=body, headers=REQUESTER)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_ride(client: AsyncClient):
    ride_id = await _create(client)
    resp = await client.get(f"/api/v1/rides/{ride_id}")
    assert resp.status_code == 200
    assert resp.json()["id"] == ride_id


@pytest.mark.asyncio
async def test_get_ride_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/rides/9999")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


@pytest.mark.asyncio
async def test_list_rides_newest_first(client: AsyncClient):
    ids = [await _create(client) for _ in range(3)]
    resp = await client.get("/api/v1/rides")
    assert [r["id"] for r in resp.json()] == ids[::-1]


@pytest.mark.asyncio
async def test_full_lifecycle(client: AsyncClient):
    ride_id = await _create(client)

    resp = await _step(client, ride_id, "accept", PROVIDER)
    assert resp.json()["status"] == "ACCEPTED"
    assert resp.json()["provider_id"] == "0xprovider"

    resp = await _step(client, ride_id, "start", PROVIDER)
    assert resp.json()["status"] == "ONGOING"

    resp = await _step(client, ride_id, "complete", REQUESTER)
    assert resp.json()["status"] == "COMPLETED"

    resp = await _step(client, ride_id, "rate", REQUESTER, json={"rating": 5})
    assert resp.status_code == 200
    assert (resp.json()["is_rated"], resp.json()["rating"]) == (True, 5)

    resp = await _step(client, ride_id, "rate", REQUESTER, json={"rating": 4})
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyRated"


@pytest.mark.asyncio
async def test_second_provider_gets_already_taken(client: AsyncClient):
    ride_id = await _create(client)
    await _step(client, ride_id, "accept", PROVIDER)

    resp = await _step(client, ride_id, "accept", RIVAL)
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyTaken"


@pytest.mark.asyncio
async def test_cannot_cancel_ongoing_ride(client: AsyncClient):
    ride_id = await _create(client)
    await _step(client, ride_id, "accept", PROVIDER)
    await _step(client, ride_id, "start", PROVIDER)

    resp = await _step(client, ride_id, "cancel", REQUESTER)
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidTransition"


@pytest.mark.asyncio
async def test_only_provider_may_start(client: AsyncClient):
    ride_id = await _create(client)
    await _step(client, ride_id, "accept", PROVIDER)

    resp = await _step(client, ride_id, "start", REQUESTER)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_rating_out_of_range_is_rejected(client: AsyncClient):
    ride_id = await _create(client)
    resp = await _step(client, ride_id, "rate", REQUESTER, json={"rating": 6})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_feed_and_history(client: AsyncClient):
    taken = await _create(client)
    still_open = await _create(client)
    await _step(client, taken, "accept", PROVIDER)

    feed = (await client.get("/api/v1/feed")).json()
    assert [r["id"] for r in feed] == [still_open]

    own = (await client.get("/api/v1/feed", params={"provider": "0xrequester"})).json()
    assert own == []

    history = (await client.get("/api/v1/history/0xprovider")).json()
    assert [r["id"] for r in history] == [taken]


@pytest.mark.asyncio
async def test_session_phase_tracks_ledger(client: AsyncClient):
    resp = await client.get("/api/v1/sessions/0xrequester")
    assert resp.json()["phase"] == "IDLE"
    assert resp.json()["ride"] is None

    ride_id = await _create(client)
    resp = await client.get("/api/v1/sessions/0xrequester")
    assert resp.json()["phase"] == "WAITING_FOR_PROVIDER"
    assert resp.json()["ride"]["id"] == ride_id

    await _step(client, ride_id, "accept", PROVIDER)
    resp = await client.get(
        "/api/v1/sessions/0xprovider", params={"role": "PROVIDER"}
    )
    assert resp.json()["phase"] == "PROVIDER_EN_ROUTE"


@pytest.mark.asyncio
async def test_escrow_follows_lifecycle(client: AsyncClient):
    ride_id = await _create(client)
    await _step(client, ride_id, "cancel", REQUESTER)

    resp = await client.get(f"/api/v1/admin/escrow/{ride_id}")
    assert resp.status_code == 200
    assert [e["disposition"] for e in resp.json()] == ["HELD", "REFUNDED"]

    resp = await client.get("/api/v1/admin/escrow/404")
    assert resp.status_code == 404
