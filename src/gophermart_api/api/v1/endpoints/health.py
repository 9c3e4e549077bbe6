from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gophermart_api.core.settings import settings
from gophermart_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as exc:
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"

    worker = getattr(request.app.state, "accrual_worker", None)
    if settings.accrual_worker_enabled and worker is not None:
        metrics = worker.metrics
        running = bool(worker.is_running)
        component_status: Literal["ready", "starting", "disabled", "error", "degraded"]
        component_status = "ready" if running else "starting"
        detail: str | None = None
        if not running:
            detail = "Accrual reconciliation worker not running"
            status = "degraded" if status != "error" else status
        elif metrics.consecutive_faulty_passes:
            component_status = "degraded"
            detail = f"{metrics.consecutive_faulty_passes} consecutive faulty passes: {metrics.last_error or 'accrual system unavailable'}"
            status = "degraded" if status != "error" else status
        components["accrual_worker"] = ComponentStatus(
            status=component_status,
            detail=detail,
            last_error_at=metrics.last_error_at.isoformat() if metrics.last_error_at else None,
            last_success_at=metrics.last_pass_finished_at.isoformat() if metrics.last_pass_finished_at else None,
        )
    else:
        components["accrual_worker"] = ComponentStatus(
            status="disabled",
            detail="Accrual worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
