"""Operator-facing runtime metrics."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from gophermart_api.api.dependencies.services import get_accrual_worker
from gophermart_api.workers import AccrualReconciliationWorker


router = APIRouter(prefix="/observability", tags=["observability"])


@router.get("/accrual")
async def accrual_worker_snapshot(
    worker: AccrualReconciliationWorker | None = Depends(get_accrual_worker),
) -> dict[str, Any]:
    if worker is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Accrual worker not configured")
    return {
        "running": worker.is_running,
        "pending_signal": worker.has_pending_signal,
        "metrics": worker.metrics.snapshot(),
    }
