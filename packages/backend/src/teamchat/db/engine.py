"""Async SQLAlchemy engine and session factory.

The app runs on Postgres through asyncpg with a sized connection pool.
Fan-out writes every recipient's row inside a SAVEPOINT of the request's
session, so sessions keep objects loaded after commit
(expire_on_commit=False) and never lazy-load outside the event loop.
"""

from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from teamchat.config import settings


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an engine for url. Pool sizing applies to pooled server databases only."""
    options = {"echo": settings.debug}
    if "poolclass" not in kwargs and make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    options.update(kwargs)
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
async_session_factory = build_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request, rolled back if the handler fails."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def rollback_and_reload(session: AsyncSession) -> None:
    """Roll back after a failed commit, then refresh what the session still holds.

    Rollback expires every loaded object, and an expired attribute can't be
    lazy-loaded outside the event loop. Callers that keep serializing those
    objects after a best-effort step failed need them loaded again.
    """
    await session.rollback()
    for obj in list(session.identity_map.values()):
        await session.refresh(obj)
