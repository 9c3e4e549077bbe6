from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from gophermart_api.models.order import Order, OrderStatusEnum


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _seed_processed(session_factory, user_id: str, number: str, accrual: str) -> None:
    async with session_factory() as session:
        session.add(
            Order(number=number, user_id=user_id, status=OrderStatusEnum.PROCESSED, accrual=Decimal(accrual))
        )
        await session.commit()


@pytest.mark.asyncio
async def test_balance_and_withdrawal_flow(app_with_db):
    app, session_factory = app_with_db
    await _seed_processed(session_factory, "alice", "12345678903", "729.98")
    headers = {"X-Session-User": "alice"}

    async with _client(app) as client:
        balance = await client.get("/api/user/balance", headers=headers)
        assert balance.status_code == 200
        assert balance.json() == {"current": 729.98, "withdrawn": 0.0}

        no_history = await client.get("/api/user/withdrawals", headers=headers)
        assert no_history.status_code == 204

        too_much = await client.post(
            "/api/user/balance/withdraw",
            json={"order": "2377225624", "sum": 751},
            headers=headers,
        )
        assert too_much.status_code == 402

        accepted = await client.post(
            "/api/user/balance/withdraw",
            json={"order": "2377225624", "sum": 500},
            headers=headers,
        )
        assert accepted.status_code == 200
        assert accepted.json()["order"] == "2377225624"
        assert accepted.json()["sum"] == 500.0

        balance = await client.get("/api/user/balance", headers=headers)
        history = await client.get("/api/user/withdrawals", headers=headers)

    assert balance.json() == {"current": 229.98, "withdrawn": 500.0}
    assert history.status_code == 200
    assert [(item["order"], item["sum"]) for item in history.json()] == [("2377225624", 500.0)]
    assert "processed_at" in history.json()[0]


@pytest.mark.asyncio
async def test_withdraw_rejects_invalid_requests(app_with_db):
    app, session_factory = app_with_db
    await _seed_processed(session_factory, "alice", "12345678903", "100")
    headers = {"X-Session-User": "alice"}

    async with _client(app) as client:
        bad_order = await client.post(
            "/api/user/balance/withdraw",
            json={"order": "2377225620", "sum": 10},
            headers=headers,
        )
        zero = await client.post(
            "/api/user/balance/withdraw",
            json={"order": "2377225624", "sum": 0},
            headers=headers,
        )
        numeric_order = await client.post(
            "/api/user/balance/withdraw",
            json={"order": 2377225624, "sum": 10},
            headers=headers,
        )
        anonymous = await client.post(
            "/api/user/balance/withdraw",
            json={"order": "2377225624", "sum": 10},
        )

    assert bad_order.status_code == 422
    assert zero.status_code == 422
    assert numeric_order.status_code == 200
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_balance_requires_session(app_with_db):
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.get("/api/user/balance")
        too_long = await client.get("/api/user/balance", headers={"X-Session-User": "x" * 65})

    assert response.status_code == 401
    assert too_long.status_code == 400
