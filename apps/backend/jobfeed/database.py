"""Async engine, session factory and the request-scoped session dependency.

The engine is built once from ``settings.database_url``. PostgreSQL (asyncpg)
gets a sized, pre-pinged pool; SQLite, used for local runs and tests, gets
the dialect's default pool. Sessions keep loaded objects usable after
commit so services can hand rows to the response schemas.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import settings
from .models.base import Base

POOL_SIZE = 5
POOL_MAX_OVERFLOW = 10


def _engine_options() -> dict:
    if settings.is_sqlite:
        return {"echo": settings.debug}
    return {
        "echo": settings.debug,
        "pool_size": POOL_SIZE,
        "max_overflow": POOL_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


engine: AsyncEngine = create_async_engine(settings.database_url, **_engine_options())

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request.

    Services commit their own writes; whatever is still pending when the
    route returns is committed here, and any exception rolls it back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables for every registered model."""
    # Registers the mappers on Base.metadata
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine's pooled connections at shutdown."""
    await engine.dispose()
