"""Balance reads and withdrawal authorization."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from gophermart_api.models.withdrawal import Withdrawal
from gophermart_api.services.ledger import (
    Balance,
    InsufficientFundsError,
    InvalidOrderNumberError,
    InvalidWithdrawalAmountError,
    OrderLedgerStore,
    as_money,
    is_valid_luhn,
    normalize_order_number,
)
from .locks import UserLockRegistry


class BalanceService:
    """Computes balances and debits them without ever overdrawing.

    The balance check and the withdrawal insert share one transaction, and
    withdrawals of the same user are serialized: in-process through the
    ``UserLockRegistry``, across processes through the store's user lock.
    """

    def __init__(self, db_session: AsyncSession, *, locks: UserLockRegistry) -> None:
        self._db = db_session
        self._store = OrderLedgerStore(db_session)
        self._locks = locks

    async def get_balance(self, user_id: str) -> Balance:
        return await self._store.fetch_balance(user_id)

    async def withdraw(self, user_id: str, order_number: str | int, amount: Decimal | float | str) -> Withdrawal:
        normalized = normalize_order_number(order_number)
        if not is_valid_luhn(normalized):
            raise InvalidOrderNumberError(normalized)

        try:
            requested = as_money(amount)
        except InvalidOperation:
            raise InvalidWithdrawalAmountError(Decimal("0")) from None
        if not requested.is_finite() or requested <= 0:
            raise InvalidWithdrawalAmountError(requested)

        async with self._locks.hold(user_id):
            try:
                await self._store.lock_user(user_id)
                balance = await self._store.fetch_balance(user_id)
                if requested > balance.current:
                    raise InsufficientFundsError(requested=requested, available=balance.current)
                withdrawal = await self._store.insert_withdrawal(user_id, normalized, requested)
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise

        logger.info(
            "Withdrawal committed",
            user_id=user_id,
            order=normalized,
            amount=str(requested),
            remaining=str(balance.current - requested),
        )
        return withdrawal

    async def list_withdrawals(self, user_id: str) -> Sequence[Withdrawal]:
        return await self._store.list_withdrawals(user_id)


__all__ = ["BalanceService"]
