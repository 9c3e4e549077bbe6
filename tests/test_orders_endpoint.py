from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from gophermart_api.models.order import Order, OrderStatusEnum


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _as(user_id: str) -> dict[str, str]:
    return {"X-Session-User": user_id, "Content-Type": "text/plain"}


@pytest.mark.asyncio
async def test_upload_order_statuses(app_with_db):
    app, _ = app_with_db
    worker = app.state.accrual_worker

    async with _client(app) as client:
        created = await client.post("/api/user/orders", content="12345678903", headers=_as("alice"))
        again = await client.post("/api/user/orders", content="12345678903\n", headers=_as("alice"))
        taken = await client.post("/api/user/orders", content="12345678903", headers=_as("bob"))

    assert created.status_code == 202
    assert created.json() == {"number": "12345678903", "outcome": "created"}
    assert again.status_code == 200
    assert again.json()["outcome"] == "already_submitted"
    assert taken.status_code == 409
    assert worker.has_pending_signal


@pytest.mark.asyncio
async def test_upload_order_rejects_bad_bodies(app_with_db):
    app, _ = app_with_db

    async with _client(app) as client:
        invalid = await client.post("/api/user/orders", content="12345678900", headers=_as("alice"))
        letters = await client.post("/api/user/orders", content="not-a-number", headers=_as("alice"))
        empty = await client.post("/api/user/orders", content="", headers=_as("alice"))
        binary = await client.post("/api/user/orders", content=b"\xff\xfe", headers=_as("alice"))
        anonymous = await client.post("/api/user/orders", content="12345678903")

    assert invalid.status_code == 422
    assert letters.status_code == 422
    assert empty.status_code == 400
    assert binary.status_code == 400
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_list_orders_shows_status_and_accrual(app_with_db):
    app, session_factory = app_with_db

    async with _client(app) as client:
        empty = await client.get("/api/user/orders", headers=_as("alice"))
        assert empty.status_code == 204

        await client.post("/api/user/orders", content="12345678903", headers=_as("alice"))
        async with session_factory() as session:
            session.add(
                Order(
                    number="79927398713",
                    user_id="alice",
                    status=OrderStatusEnum.PROCESSED,
                    accrual=Decimal("500"),
                )
            )
            await session.commit()

        listing = await client.get("/api/user/orders", headers=_as("alice"))
        other = await client.get("/api/user/orders", headers=_as("bob"))

    assert listing.status_code == 200
    by_number = {item["number"]: item for item in listing.json()}
    assert set(by_number) == {"12345678903", "79927398713"}
    assert by_number["12345678903"]["status"] == "NEW"
    assert "accrual" not in by_number["12345678903"]
    assert by_number["79927398713"]["status"] == "PROCESSED"
    assert by_number["79927398713"]["accrual"] == 500.0
    assert "uploaded_at" in by_number["79927398713"]
    assert other.status_code == 204


@pytest.mark.asyncio
async def test_accrual_observability_snapshot(app_with_db):
    app, _ = app_with_db

    async with _client(app) as client:
        await client.post("/api/user/orders", content="12345678903", headers=_as("alice"))
        response = await client.get("/api/observability/accrual")

    assert response.status_code == 200
    body = response.json()
    assert body["running"] is False
    assert body["pending_signal"] is True
    assert body["metrics"]["signals_received"] == 1
