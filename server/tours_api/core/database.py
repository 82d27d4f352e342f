"""Async engine, session factory and schema bootstrap."""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings

# SQLite gets a single shared connection so in-memory databases survive across sessions
_engine_options = (
    {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    if settings.is_sqlite
    else {"pool_pre_ping": True}
)

engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level == "DEBUG",
    **_engine_options,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Uncommitted work is rolled back if the handler raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any missing tables."""
    from .. import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db(session: AsyncSession) -> bool:
    """Return True if the database answers a trivial query."""
    result = await session.execute(text("SELECT 1"))
    return result.scalar() == 1


async def close_db() -> None:
    await engine.dispose()
