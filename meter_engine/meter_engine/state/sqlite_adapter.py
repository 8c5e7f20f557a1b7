"""SQLite tenant store for local runs and tests.

The same ORM mapping as the MySQL deployment, backed by an ``aiosqlite``
file, so a pass can run end to end without a database server.  Unlike
production, where the provisioning process owns the ``user`` table, a local
database can create its own schema with :func:`create_local_tables`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from meter_engine.state.tables import Base

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def _on_connect(dbapi_conn: Any, _record: Any) -> None:
    # WAL lets `egressmeter tenants` read while a pass is writing.
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def get_local_engine(db_path: Path | str = ".egressmeter/state.db") -> AsyncEngine:
    """Return an async engine on the SQLite file *db_path*.

    Missing parent directories are created.  ``":memory:"`` gives a
    throwaway in-memory database.
    """
    if str(db_path) == MEMORY:
        location = MEMORY
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        location = str(path)

    engine = create_async_engine(f"sqlite+aiosqlite:///{location}", connect_args={"check_same_thread": False})
    event.listen(engine.sync_engine, "connect", _on_connect)
    logger.info("Opened local tenant store %s", location)
    return engine


async def create_local_tables(engine: AsyncEngine) -> None:
    """Create the tenant table if it does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Local tenant schema ready")
