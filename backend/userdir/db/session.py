"""Database engine and session factory construction."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from userdir.core.config import get_settings
from userdir.db.base import Base


def build_engine(database_url: str | None = None) -> AsyncEngine:
    url = database_url or get_settings().database_url
    return create_async_engine(url, future=True, echo=False)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


async def create_schema(bind: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""

    # Registers the models on Base.metadata
    import userdir.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
