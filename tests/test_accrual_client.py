from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from email.utils import format_datetime

import httpx
import pytest

from gophermart_api.models.order import OrderStatusEnum
from gophermart_api.services.accrual import (
    MAX_ACCRUAL,
    AccrualClient,
    AccrualFinal,
    AccrualPending,
    AccrualRateLimited,
    AccrualServerFault,
    AccrualTransportError,
    classify_payload,
    parse_retry_after,
)


def _client_for(handler) -> AccrualClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AccrualClient("http://accrual.test/", http_client=http_client)


@pytest.mark.asyncio
async def test_processed_verdict_carries_accrual() -> None:
    seen: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"order": "12345678903", "status": "PROCESSED", "accrual": 729.98})

    client = _client_for(handler)
    result = await client.query("12345678903")

    assert seen == ["http://accrual.test/api/orders/12345678903"]
    assert result == AccrualFinal(order="12345678903", status=OrderStatusEnum.PROCESSED, accrual=Decimal("729.98"))


@pytest.mark.asyncio
async def test_invalid_verdict_has_no_accrual() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"order": "12345678903", "status": "INVALID"})

    result = await _client_for(handler).query("12345678903")

    assert result == AccrualFinal(order="12345678903", status=OrderStatusEnum.INVALID)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["REGISTERED", "PROCESSING"])
async def test_in_progress_statuses_are_pending(status: str) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"order": "12345678903", "status": status})

    result = await _client_for(handler).query("12345678903")

    assert result == AccrualPending(order="12345678903", reported_status=status)


@pytest.mark.asyncio
async def test_rate_limit_reports_retry_after() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "60"}, text="No more than N requests per minute allowed")

    result = await _client_for(handler).query("12345678903")

    assert result == AccrualRateLimited(order="12345678903", retry_after=60.0)


@pytest.mark.asyncio
async def test_server_error_is_a_fault() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    result = await _client_for(handler).query("12345678903")

    assert result == AccrualServerFault(order="12345678903", status_code=503)


@pytest.mark.asyncio
async def test_unregistered_order_is_a_transport_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    result = await _client_for(handler).query("12345678903")

    assert isinstance(result, AccrualTransportError)
    assert result.reason == "unexpected_status:204"


@pytest.mark.asyncio
async def test_malformed_body_is_a_transport_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"{not json", headers={"Content-Type": "application/json"})

    result = await _client_for(handler).query("12345678903")

    assert result == AccrualTransportError(order="12345678903", reason="malformed_json")


@pytest.mark.asyncio
async def test_network_failure_is_a_transport_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _client_for(handler).query("12345678903")

    assert result == AccrualTransportError(order="12345678903", reason="ConnectError")


def test_payload_edge_cases() -> None:
    assert isinstance(classify_payload("1", ["PROCESSED"]), AccrualTransportError)
    assert isinstance(classify_payload("1", {"order": "2", "status": "PROCESSED", "accrual": 5}), AccrualTransportError)
    assert isinstance(classify_payload("1", {"status": "DONE"}), AccrualTransportError)
    assert isinstance(classify_payload("1", {"status": "PROCESSED", "accrual": -1}), AccrualTransportError)
    assert isinstance(classify_payload("1", {"status": "PROCESSED", "accrual": "lots"}), AccrualTransportError)
    assert classify_payload("1", {"status": "PROCESSED"}) == AccrualFinal(
        order="1", status=OrderStatusEnum.PROCESSED, accrual=Decimal("0")
    )
    assert classify_payload("1", {"order": 1, "status": "processed", "accrual": 10}) == AccrualFinal(
        order="1", status=OrderStatusEnum.PROCESSED, accrual=Decimal("10")
    )


def test_parse_retry_after_accepts_seconds_and_dates() -> None:
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    assert parse_retry_after(None) is None
    assert parse_retry_after("garbage") is None
    assert parse_retry_after(" 15 ") == 15.0
    assert parse_retry_after(format_datetime(now + timedelta(seconds=30), usegmt=True), now=now) == 30.0
    assert parse_retry_after(format_datetime(now - timedelta(seconds=30), usegmt=True), now=now) == 0.0


@pytest.mark.asyncio
async def test_owned_client_is_closed_by_context_manager() -> None:
    async with AccrualClient("accrual.test:8080/") as client:
        assert client.base_url == "accrual.test:8080"
    assert client._client.is_closed


def test_accrual_too_large_for_storage_is_rejected() -> None:
    oversized = classify_payload("1", {"status": "PROCESSED", "accrual": 1e30})
    assert oversized == AccrualTransportError(order="1", reason="invalid_accrual")

    assert classify_payload("1", {"status": "PROCESSED", "accrual": "9999999999.99"}) == AccrualFinal(
        order="1", status=OrderStatusEnum.PROCESSED, accrual=MAX_ACCRUAL
    )
    assert isinstance(
        classify_payload("1", {"status": "PROCESSED", "accrual": "10000000000"}), AccrualTransportError
    )
