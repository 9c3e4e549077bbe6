from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from gophermart_api.core.settings import settings
from gophermart_api.db.session import async_session, engine, prepare_database
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.accrual import AccrualClient
from .services.balance import UserLockRegistry
from .workers import AccrualReconciliationWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # An unreachable store must keep the service from accepting traffic.
    await prepare_database(engine, create_tables=settings.database_auto_create)
    logger.info("Database ready", auto_create=settings.database_auto_create)

    accrual_client = AccrualClient(
        settings.accrual_system_address,
        timeout_seconds=settings.accrual_request_timeout_seconds,
    )
    accrual_worker = AccrualReconciliationWorker(
        session_factory=_session_factory,
        accrual_client=accrual_client,
        backoff_base_seconds=settings.accrual_backoff_base_seconds,
        backoff_max_seconds=settings.accrual_backoff_max_seconds,
        pending_recheck_seconds=settings.accrual_pending_recheck_seconds,
    )

    app.state.user_locks = UserLockRegistry()
    app.state.accrual_worker = accrual_worker

    worker_enabled = settings.accrual_worker_enabled
    if worker_enabled:
        accrual_worker.start()
        logger.info(
            "Accrual reconciliation worker enabled",
            accrual_system_address=accrual_client.base_url,
        )
    else:
        logger.info(
            "Accrual reconciliation worker disabled",
            reason="accrual_worker_enabled is false",
        )

    try:
        yield
    finally:
        if worker_enabled:
            await accrual_worker.stop()
        await accrual_client.aclose()


def create_app() -> FastAPI:
    """Application factory for the gophermart loyalty service."""
    configure_logging(
        service_name="gophermart-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Gophermart API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        settings,
        service_name="gophermart-api",
        service_version=APP_VERSION,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
