"""Persistence access for orders, accruals and withdrawals."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

from loguru import logger
from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gophermart_api.models.order import Order, OrderStatusEnum
from gophermart_api.models.withdrawal import Withdrawal
from .errors import OrderOwnershipConflictError


_CENTS = Decimal("0.01")


def as_money(value: object) -> Decimal:
    """Coerce driver aggregates (float on SQLite, Decimal on PostgreSQL) to cents."""

    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(_CENTS)


class SubmissionOutcome(str, Enum):
    CREATED = "created"
    ALREADY_SUBMITTED = "already_submitted"


@dataclass(frozen=True)
class Balance:
    """Balance derived from one consistent read of accruals and withdrawals."""

    current: Decimal
    withdrawn: Decimal


class OrderLedgerStore:
    """Reads and writes the orders and withdrawals tables for one session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def add_order(self, user_id: str, number: str) -> SubmissionOutcome:
        """Insert a NEW order; resubmission by the owner is a no-op."""

        self._session.add(Order(number=number, user_id=user_id, status=OrderStatusEnum.NEW))
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            owner = await self.get_order_owner(number)
            if owner is None:
                raise
            if owner != user_id:
                logger.info("Order number claimed by another user", order=number, user_id=user_id)
                raise OrderOwnershipConflictError(number) from None
            return SubmissionOutcome.ALREADY_SUBMITTED

        logger.info("Order registered", order=number, user_id=user_id)
        return SubmissionOutcome.CREATED

    async def get_order_owner(self, number: str) -> str | None:
        stmt = select(Order.user_id).where(Order.number == number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_order(self, number: str) -> Order | None:
        return await self._session.get(Order, number)

    async def list_orders(self, user_id: str) -> list[Order]:
        """Return the user's orders, most recently uploaded first."""

        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.uploaded_at.desc(), Order.number.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def list_live_order_numbers(self) -> list[str]:
        """Numbers of every order still in NEW or PROCESSING."""

        stmt = (
            select(Order.number)
            .where(Order.status.in_(OrderStatusEnum.live()))
            .order_by(Order.uploaded_at, Order.number)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def apply_verdict(
        self,
        number: str,
        status: OrderStatusEnum,
        accrual: Decimal | None = None,
    ) -> bool:
        """Write an accrual verdict in a single guarded statement.

        Only live orders match, so terminal orders never change again. Returns
        whether a row was updated.
        """

        values: dict[str, object] = {"status": status}
        if status == OrderStatusEnum.PROCESSED:
            values["accrual"] = as_money(accrual)
        stmt = (
            update(Order)
            .where(Order.number == number, Order.status.in_(OrderStatusEnum.live()))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return bool(result.rowcount)

    async def fetch_balance(self, user_id: str) -> Balance:
        """Sum accruals and withdrawals in one statement so both share a snapshot."""

        accrued = (
            select(func.coalesce(func.sum(Order.accrual), 0))
            .where(Order.user_id == user_id, Order.status == OrderStatusEnum.PROCESSED)
            .scalar_subquery()
        )
        withdrawn = (
            select(func.coalesce(func.sum(Withdrawal.sum), 0))
            .where(Withdrawal.user_id == user_id)
            .scalar_subquery()
        )
        row = (await self._session.execute(select(accrued.label("accrued"), withdrawn.label("withdrawn")))).one()
        total_accrued = as_money(row.accrued)
        total_withdrawn = as_money(row.withdrawn)
        return Balance(current=total_accrued - total_withdrawn, withdrawn=total_withdrawn)

    async def lock_user(self, user_id: str) -> None:
        """Take a transaction-scoped advisory lock for the user on PostgreSQL.

        Other backends rely on the in-process lock held by the caller.
        """

        bind = self._session.get_bind()
        if bind.dialect.name != "postgresql":
            return
        await self._session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:user_id))"),
            {"user_id": user_id},
        )

    async def insert_withdrawal(self, user_id: str, order_number: str, amount: Decimal) -> Withdrawal:
        """Stage a withdrawal row; the caller owns the transaction."""

        withdrawal = Withdrawal(order_number=order_number, user_id=user_id, sum=as_money(amount))
        self._session.add(withdrawal)
        await self._session.flush()
        return withdrawal

    async def list_withdrawals(self, user_id: str) -> Sequence[Withdrawal]:
        stmt = (
            select(Withdrawal)
            .where(Withdrawal.user_id == user_id)
            .order_by(Withdrawal.processed_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars())


__all__ = ["Balance", "OrderLedgerStore", "SubmissionOutcome", "as_money"]
