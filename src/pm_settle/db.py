from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pm_settle.config import settings

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def get_engine(url: str | None = None) -> AsyncEngine:
    """Get a singleton async engine for the audit ledger.

    Notes
    -----
    - pool_pre_ping: Detects stale connections before using them
    - passing ``url`` replaces the singleton (tests point it at temporary SQLite files)
    """
    global _engine, _sessionmaker
    if _engine is None or url is not None:
        _engine = create_async_engine(
            url or settings.database_url_async,
            pool_pre_ping=True,
            echo_pool=settings.debug,
        )
        _sessionmaker = None
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the current engine."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Async context manager that yields a pooled session."""
    async with get_sessionmaker()() as session:
        yield session
