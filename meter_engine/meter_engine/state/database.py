"""Async SQLAlchemy engine and sessions for the tenant store.

The backend is chosen from the URL's driver name:

* ``mysql+aiomysql://``     pooled MySQL engine (production deployments)
* ``postgresql+asyncpg://`` pooled PostgreSQL engine
* ``sqlite+aiosqlite://``   local SQLite file, see :mod:`.sqlite_adapter`

A process opens one engine at start-up, hands it to the tenant store, and
disposes it before exiting.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

# Pooled backends recycle connections before MySQL's wait_timeout closes them.
_POOL_OPTIONS: dict[str, Any] = {
    "pool_pre_ping": True,
    "pool_recycle": 3600,
    "pool_timeout": 10,
}


def _connect_args(url: URL) -> dict[str, Any]:
    if url.get_backend_name() == "postgresql":
        return {"server_settings": {"statement_timeout": "30000", "lock_timeout": "10000"}}
    return {}


def get_engine(database_url: str, pool_size: int = 5, max_overflow: int = 5) -> AsyncEngine:
    """Create the async engine for *database_url*.

    ``pool_size`` and ``max_overflow`` apply to MySQL and PostgreSQL only.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        from meter_engine.state.sqlite_adapter import get_local_engine

        return get_local_engine(url.database or ":memory:")

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        connect_args=_connect_args(url),
        **_POOL_OPTIONS,
    )
    logger.info(
        "Opened tenant store %s (pool_size=%d, max_overflow=%d)",
        url.render_as_string(hide_password=True),
        pool_size,
        max_overflow,
    )
    return engine


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to *engine*; loaded objects survive commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session(
    bind: AsyncEngine | async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Run the enclosed block in one transaction.

    *bind* is either a session factory owned by the caller or an engine,
    in which case a one-off session is opened on it.  Commits when the
    block exits normally and rolls back if it raises.
    """
    factory = bind if isinstance(bind, async_sessionmaker) else session_factory(bind)

    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close every pooled connection of *engine*."""
    await engine.dispose()
    logger.debug("Disposed tenant store engine")
