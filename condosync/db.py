from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings

engine: AsyncEngine = create_async_engine(settings.CONDOSYNC_DB_URL, echo=False, future=True)

# Canonical async session factory
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    FastAPI dependency for code that opens its own transactions (sync runs).
    Tests override it with a factory bound to an in-memory engine.
    """
    return AsyncSessionLocal
