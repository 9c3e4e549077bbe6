"""HTTP client for the external accrual system."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Union

import httpx
from loguru import logger

from gophermart_api.models.order import OrderStatusEnum


_PENDING_STATUSES = {"REGISTERED", "PROCESSING"}
# Largest amount the Numeric(12, 2) accrual column holds.
MAX_ACCRUAL = Decimal("9999999999.99")


@dataclass(frozen=True, slots=True)
class AccrualFinal:
    """Terminal verdict: PROCESSED with an amount, or INVALID."""

    order: str
    status: OrderStatusEnum
    accrual: Decimal | None = None


@dataclass(frozen=True, slots=True)
class AccrualPending:
    """The accrual system knows the order but has no verdict yet."""

    order: str
    reported_status: str


@dataclass(frozen=True, slots=True)
class AccrualRateLimited:
    order: str
    retry_after: float | None = None


@dataclass(frozen=True, slots=True)
class AccrualServerFault:
    order: str
    status_code: int


@dataclass(frozen=True, slots=True)
class AccrualTransportError:
    order: str
    reason: str


AccrualResult = Union[
    AccrualFinal,
    AccrualPending,
    AccrualRateLimited,
    AccrualServerFault,
    AccrualTransportError,
]


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header given as delta-seconds or an HTTP date."""

    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    reference = now or datetime.now(timezone.utc)
    return max((retry_at - reference).total_seconds(), 0.0)


def classify_payload(order: str, payload: Any) -> AccrualResult:
    """Map a decoded 200 body onto exactly one accrual result."""

    if not isinstance(payload, Mapping):
        return AccrualTransportError(order=order, reason="unexpected_payload")

    reported_order = payload.get("order")
    if reported_order is not None and str(reported_order).strip() != order:
        return AccrualTransportError(order=order, reason=f"order_mismatch:{reported_order}")

    status = str(payload.get("status") or "").upper()
    if status in _PENDING_STATUSES:
        return AccrualPending(order=order, reported_status=status)
    if status == OrderStatusEnum.INVALID.value:
        return AccrualFinal(order=order, status=OrderStatusEnum.INVALID)
    if status == OrderStatusEnum.PROCESSED.value:
        raw_accrual = payload.get("accrual")
        if raw_accrual is None:
            return AccrualFinal(order=order, status=OrderStatusEnum.PROCESSED, accrual=Decimal("0"))
        if isinstance(raw_accrual, bool):
            return AccrualTransportError(order=order, reason="invalid_accrual")
        try:
            accrual = Decimal(str(raw_accrual))
        except InvalidOperation:
            return AccrualTransportError(order=order, reason="invalid_accrual")
        if not accrual.is_finite() or accrual < 0 or accrual > MAX_ACCRUAL:
            return AccrualTransportError(order=order, reason="invalid_accrual")
        return AccrualFinal(order=order, status=OrderStatusEnum.PROCESSED, accrual=accrual)

    return AccrualTransportError(order=order, reason=f"unknown_status:{status or 'missing'}")


def classify_response(order: str, response: httpx.Response) -> AccrualResult:
    """Map an HTTP response from ``GET /api/orders/{number}`` onto a result."""

    if response.status_code == httpx.codes.OK:
        try:
            payload = response.json()
        except ValueError:
            return AccrualTransportError(order=order, reason="malformed_json")
        return classify_payload(order, payload)
    if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
        return AccrualRateLimited(
            order=order,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if response.is_server_error:
        return AccrualServerFault(order=order, status_code=response.status_code)
    return AccrualTransportError(order=order, reason=f"unexpected_status:{response.status_code}")


class AccrualClient:
    """Queries the accrual system for the verdict on one order at a time."""

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def query(self, order: str) -> AccrualResult:
        url = f"{self._base_url}/api/orders/{order}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Accrual system request failed", order=order, url=url, error=str(exc))
            return AccrualTransportError(order=order, reason=exc.__class__.__name__)

        result = classify_response(order, response)
        logger.debug(
            "Accrual system responded",
            order=order,
            status_code=response.status_code,
            verdict=type(result).__name__,
        )
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AccrualClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = [
    "AccrualClient",
    "AccrualFinal",
    "AccrualPending",
    "AccrualRateLimited",
    "AccrualResult",
    "AccrualServerFault",
    "AccrualTransportError",
    "MAX_ACCRUAL",
    "classify_payload",
    "classify_response",
    "parse_retry_after",
]
