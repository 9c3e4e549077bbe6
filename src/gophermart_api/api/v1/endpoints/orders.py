"""Order upload and listing endpoints for members."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from gophermart_api.api.dependencies.services import get_order_service
from gophermart_api.api.dependencies.session import require_member_session
from gophermart_api.services.ledger import (
    InvalidOrderNumberError,
    OrderOwnershipConflictError,
    SubmissionOutcome,
)
from gophermart_api.services.orders import OrderService


router = APIRouter(prefix="/user", tags=["orders"])


class OrderSubmissionResponse(BaseModel):
    number: str
    outcome: SubmissionOutcome


class OrderResponse(BaseModel):
    """Order as shown to its owner."""
    number: str
    status: str
    accrual: Optional[float] = Field(None, description="Present once the order is PROCESSED")
    uploaded_at: datetime


@router.post(
    "/orders",
    response_model=OrderSubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_order(
    request: Request,
    response: Response,
    user_id: str = Depends(require_member_session),
    service: OrderService = Depends(get_order_service),
) -> OrderSubmissionResponse:
    """Register an order number for accrual; the body is the bare number as text."""

    raw = await request.body()
    try:
        number = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be UTF-8 text") from exc
    if not number:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order number is required")

    try:
        outcome = await service.submit_order(user_id, number)
    except InvalidOrderNumberError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except OrderOwnershipConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    if outcome == SubmissionOutcome.ALREADY_SUBMITTED:
        response.status_code = status.HTTP_200_OK
    return OrderSubmissionResponse(number=number, outcome=outcome)


@router.get(
    "/orders",
    response_model=List[OrderResponse],
    response_model_exclude_none=True,
    responses={204: {"description": "No orders uploaded yet"}},
)
async def list_orders(
    user_id: str = Depends(require_member_session),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_orders(user_id)
    if not orders:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return [
        OrderResponse(
            number=order.number,
            status=order.status.value,
            accrual=float(order.accrual) if order.accrual is not None else None,
            uploaded_at=order.uploaded_at,
        )
        for order in orders
    ]
