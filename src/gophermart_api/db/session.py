"""Async engine and session factory shared by the API and the workers."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from gophermart_api.core.settings import settings


engine: AsyncEngine = create_async_engine(settings.database_url, echo=settings.database_echo, future=True)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def prepare_database(db_engine: AsyncEngine, *, create_tables: bool) -> None:
    """Fail fast when the store is unreachable; optionally create the schema."""

    # Late import registers the mapped tables on Base.metadata.
    from gophermart_api import models  # noqa: F401
    from gophermart_api.db.base import Base

    async with db_engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if create_tables:
            await conn.run_sync(Base.metadata.create_all)
