"""Balance, withdrawal and withdrawal history endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator

from gophermart_api.api.dependencies.services import get_balance_service
from gophermart_api.api.dependencies.session import require_member_session
from gophermart_api.services.balance import BalanceService
from gophermart_api.services.ledger import (
    InsufficientFundsError,
    InvalidOrderNumberError,
    InvalidWithdrawalAmountError,
)


router = APIRouter(prefix="/user", tags=["balance"])


class BalanceResponse(BaseModel):
    current: float
    withdrawn: float


class WithdrawRequest(BaseModel):
    order: str = Field(..., description="Order number the points are withdrawn against")
    sum: Decimal = Field(..., gt=0, description="Points to withdraw")

    @field_validator("order", mode="before")
    @classmethod
    def _coerce_order(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class WithdrawalResponse(BaseModel):
    order: str
    sum: float
    processed_at: datetime


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user_id: str = Depends(require_member_session),
    service: BalanceService = Depends(get_balance_service),
) -> BalanceResponse:
    balance = await service.get_balance(user_id)
    return BalanceResponse(current=float(balance.current), withdrawn=float(balance.withdrawn))


@router.post("/balance/withdraw", response_model=WithdrawalResponse)
async def withdraw(
    payload: WithdrawRequest,
    user_id: str = Depends(require_member_session),
    service: BalanceService = Depends(get_balance_service),
) -> WithdrawalResponse:
    try:
        withdrawal = await service.withdraw(user_id, payload.order, payload.sum)
    except InsufficientFundsError as exc:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(exc)) from exc
    except (InvalidOrderNumberError, InvalidWithdrawalAmountError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return WithdrawalResponse(
        order=withdrawal.order_number,
        sum=float(withdrawal.sum),
        processed_at=withdrawal.processed_at,
    )


@router.get(
    "/withdrawals",
    response_model=List[WithdrawalResponse],
    responses={204: {"description": "No withdrawals yet"}},
)
async def list_withdrawals(
    user_id: str = Depends(require_member_session),
    service: BalanceService = Depends(get_balance_service),
):
    withdrawals = await service.list_withdrawals(user_id)
    if not withdrawals:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return [
        WithdrawalResponse(
            order=withdrawal.order_number,
            sum=float(withdrawal.sum),
            processed_at=withdrawal.processed_at,
        )
        for withdrawal in withdrawals
    ]
