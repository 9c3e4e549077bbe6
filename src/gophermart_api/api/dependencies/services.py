"""Dependencies resolving process-wide collaborators from application state."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gophermart_api.db.session import get_session
from gophermart_api.services.balance import BalanceService, UserLockRegistry
from gophermart_api.services.orders import OrderService
from gophermart_api.workers import AccrualReconciliationWorker


def get_accrual_worker(request: Request) -> AccrualReconciliationWorker | None:
    return getattr(request.app.state, "accrual_worker", None)


def get_user_locks(request: Request) -> UserLockRegistry:
    locks = getattr(request.app.state, "user_locks", None)
    if locks is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Withdrawal locks not initialised",
        )
    return locks


def get_order_service(
    db: AsyncSession = Depends(get_session),
    worker: AccrualReconciliationWorker | None = Depends(get_accrual_worker),
) -> OrderService:
    return OrderService(db, signal=worker.signal if worker is not None else None)


def get_balance_service(
    db: AsyncSession = Depends(get_session),
    locks: UserLockRegistry = Depends(get_user_locks),
) -> BalanceService:
    return BalanceService(db, locks=locks)
