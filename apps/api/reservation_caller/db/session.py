"""Database engine and session management."""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import settings
from ..models.base import Base


def _async_url(url: str) -> str:
    """Point plain Postgres URLs at the asyncpg driver."""

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def create_engine(url: str) -> AsyncEngine:
    return create_async_engine(_async_url(url), echo=False, pool_pre_ping=True)


@lru_cache
def get_engine() -> AsyncEngine:
    """Return the process-wide engine for ``settings.database_url``."""

    if not settings.has_database_config:
        raise RuntimeError("DATABASE_URL is not configured")
    return create_engine(settings.database_url)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(engine: AsyncEngine) -> None:
    """Create the calls table when it does not exist yet."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
