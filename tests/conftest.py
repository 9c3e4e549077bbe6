import sys
from pathlib import Path

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from gophermart_api import models  # noqa: E402,F401
from gophermart_api.app import create_app  # noqa: E402
from gophermart_api.db.base import Base  # noqa: E402
from gophermart_api.db.session import get_session  # noqa: E402
from gophermart_api.services.accrual import AccrualPending  # noqa: E402
from gophermart_api.services.balance import UserLockRegistry  # noqa: E402
from gophermart_api.workers import AccrualReconciliationWorker  # noqa: E402


class _IdleAccrualClient:
    async def query(self, order: str):
        return AccrualPending(order=order, reported_status="REGISTERED")


async def _build_factory(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _build_factory("sqlite+aiosqlite:///:memory:")

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Separate connections per session, for tests that interleave transactions."""

    engine, factory = await _build_factory(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    # ASGITransport does not run the lifespan; wire the collaborators it would create.
    app.state.user_locks = UserLockRegistry()
    app.state.accrual_worker = AccrualReconciliationWorker(session_factory, _IdleAccrualClient())

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
