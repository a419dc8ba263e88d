"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) is accepted too,
which is what the test suite runs against. SQLite does not take pool
sizing arguments, so those are only passed for server databases.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from highway_notes.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    # Connection pool: min 5, max 20 connections.
    return create_async_engine(url, echo=echo, pool_size=5, max_overflow=15)


engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory: each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
