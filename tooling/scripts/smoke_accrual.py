#!/usr/bin/env python3
"""Smoke test for the order → accrual → withdrawal flow.

Usage (HTTP, against a running service wired to a real accrual system):
    python tooling/scripts/smoke_accrual.py --base-url http://localhost:8000

Usage (in-process, with a stub accrual system and a throwaway SQLite file):
    python tooling/scripts/smoke_accrual.py --in-process

The script checks:
1. API health (`/healthz`)
2. Order upload (`POST /api/user/orders`) with a freshly generated Luhn-valid number
3. Accrual reconciliation until the order leaves NEW/PROCESSING (`GET /api/user/orders`)
4. Balance (`GET /api/user/balance`) and a withdrawal (`POST /api/user/balance/withdraw`)
5. Accrual worker observability snapshot (`/api/observability/accrual`)
"""

from __future__ import annotations

import argparse
import asyncio
import os
import random
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx
from httpx import ASGITransport, Response

STUB_ACCRUAL = 500.0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gophermart accrual smoke test")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the FastAPI service (ignored with --in-process)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Request timeout in seconds",
    )
    parser.add_argument(
        "--settle-seconds",
        type=float,
        default=30.0,
        help="How long to wait for the accrual verdict in HTTP mode",
    )
    parser.add_argument(
        "--in-process",
        action="store_true",
        help="Run requests directly against the ASGI app with a stub accrual system.",
    )
    return parser.parse_args()


def _ensure_src_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))


def _generate_order_number() -> str:
    from gophermart_api.services.ledger import luhn_check_digit  # type: ignore import-position

    payload = "".join(random.choice("0123456789") for _ in range(11))
    return f"{payload}{luhn_check_digit(payload)}"


async def _get_json(client: httpx.AsyncClient, path: str, headers: dict[str, str] | None = None) -> Any:
    response: Response = await client.get(path, headers=headers)
    response.raise_for_status()
    if response.status_code == 204:
        return None
    return response.json()


async def _wait_for_verdict(
    client: httpx.AsyncClient,
    number: str,
    headers: dict[str, str],
    reconcile: Callable[[], Awaitable[None]],
    settle_seconds: float,
) -> dict[str, Any]:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settle_seconds
    while True:
        await reconcile()
        orders = await _get_json(client, "/api/user/orders", headers=headers) or []
        order = next((item for item in orders if item.get("number") == number), None)
        if order is None:
            raise RuntimeError(f"Uploaded order {number} missing from listing: {orders}")
        if order["status"] in {"PROCESSED", "INVALID"}:
            return order
        if loop.time() > deadline:
            raise RuntimeError(f"Order {number} still {order['status']} after {settle_seconds}s")
        await asyncio.sleep(1.0)


async def _run_checks(
    client: httpx.AsyncClient,
    *,
    reconcile: Callable[[], Awaitable[None]],
    settle_seconds: float,
) -> dict[str, Any]:
    health = await _get_json(client, "/healthz")
    if health.get("status") != "ok":
        raise RuntimeError(f"Unexpected health response: {health}")

    headers = {"X-Session-User": f"smoke-{uuid.uuid4().hex[:12]}"}
    number = _generate_order_number()
    upload = await client.post(
        "/api/user/orders",
        content=number,
        headers={**headers, "Content-Type": "text/plain"},
    )
    if upload.status_code != 202:
        raise RuntimeError(f"Order upload returned {upload.status_code}: {upload.text}")

    order = await _wait_for_verdict(client, number, headers, reconcile, settle_seconds)

    balance = await _get_json(client, "/api/user/balance", headers=headers)
    accrued = float(order.get("accrual") or 0)
    if abs(balance["current"] - accrued) > 0.005:
        raise RuntimeError(f"Balance {balance} does not reflect accrual {accrued}")

    withdrawal = None
    if accrued >= 1:
        response = await client.post(
            "/api/user/balance/withdraw",
            json={"order": _generate_order_number(), "sum": 1},
            headers=headers,
        )
        response.raise_for_status()
        withdrawal = response.json()
        balance = await _get_json(client, "/api/user/balance", headers=headers)
        if abs(balance["withdrawn"] - 1) > 0.005:
            raise RuntimeError(f"Withdrawal not reflected in balance: {balance}")

    snapshot = await _get_json(client, "/api/observability/accrual")
    if "metrics" not in snapshot:
        raise RuntimeError(f"Accrual observability response missing metrics: {snapshot}")

    return {"order": order, "balance": balance, "withdrawal": withdrawal}


async def _no_reconcile() -> None:
    return None


async def run_http(base_url: str, timeout: float, settle_seconds: float) -> dict[str, Any]:
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        return await _run_checks(client, reconcile=_no_reconcile, settle_seconds=settle_seconds)


async def run_in_process(timeout: float) -> dict[str, Any]:
    workdir = tempfile.mkdtemp(prefix="gophermart-smoke-")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(workdir) / 'smoke.db'}"
    os.environ["ACCRUAL_WORKER_ENABLED"] = "false"
    _ensure_src_on_path()

    from gophermart_api.app import create_app  # type: ignore import-position
    from gophermart_api.db.session import async_session  # type: ignore import-position
    from gophermart_api.services.accrual import AccrualClient  # type: ignore import-position
    from gophermart_api.workers import AccrualReconciliationWorker  # type: ignore import-position

    async def stub_accrual(request: httpx.Request) -> httpx.Response:
        number = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"order": number, "status": "PROCESSED", "accrual": STUB_ACCRUAL})

    accrual_http = httpx.AsyncClient(transport=httpx.MockTransport(stub_accrual))
    worker = AccrualReconciliationWorker(
        async_session,
        AccrualClient("http://accrual.stub", http_client=accrual_http),
    )

    async def reconcile() -> None:
        await worker.run_once()

    app = create_app()
    lifespan = app.router.lifespan_context(app)
    await lifespan.__aenter__()
    app.state.accrual_worker = worker
    try:
        transport = ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver", timeout=timeout) as client:
            return await _run_checks(client, reconcile=reconcile, settle_seconds=timeout)
    finally:
        await accrual_http.aclose()
        await lifespan.__aexit__(None, None, None)


def main() -> int:
    args = parse_args()
    _ensure_src_on_path()

    if args.in_process:
        result = asyncio.run(run_in_process(args.timeout))
    else:
        result = asyncio.run(run_http(args.base_url, args.timeout, args.settle_seconds))

    order = result["order"]
    print(
        f"Accrual smoke test passed ✅ Order {order['number']} {order['status']}"
        f" with accrual {order.get('accrual', 0)}; balance {result['balance']}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
