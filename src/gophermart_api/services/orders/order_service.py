"""Order submission and listing on top of the order ledger."""

from __future__ import annotations

from typing import Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from gophermart_api.models.order import Order
from gophermart_api.services.ledger import (
    InvalidOrderNumberError,
    OrderLedgerStore,
    SubmissionOutcome,
    is_valid_luhn,
    normalize_order_number,
)


class OrderService:
    """Validates and records order submissions, then wakes the accrual worker."""

    def __init__(self, db_session: AsyncSession, *, signal: Callable[[], None] | None = None) -> None:
        self._store = OrderLedgerStore(db_session)
        self._signal = signal

    async def submit_order(self, user_id: str, number: str | int) -> SubmissionOutcome:
        normalized = normalize_order_number(number)
        if not is_valid_luhn(normalized):
            logger.info("Rejected order number", order=normalized, user_id=user_id)
            raise InvalidOrderNumberError(normalized)

        outcome = await self._store.add_order(user_id, normalized)
        if self._signal is not None:
            self._signal()
        return outcome

    async def list_orders(self, user_id: str) -> list[Order]:
        return await self._store.list_orders(user_id)
