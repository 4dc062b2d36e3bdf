"""Async engine and session factory shared by request handlers and the startup seeder."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bonuswheel_api.core.settings import settings


engine = create_async_engine(settings.database_url, echo=settings.database_echo, future=True)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with async_session() as session:
        yield session


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything done inside the block, or roll all of it back."""

    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
