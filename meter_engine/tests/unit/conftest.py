"""Shared fixtures for metering engine unit tests.

Tenant rows live in a SQLite file under ``tmp_path`` (via aiosqlite) so the
conditional-update path runs against a real database.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from meter_engine.state.database import dispose_engine
from meter_engine.state.repository import SqlTenantStore
from meter_engine.state.sqlite_adapter import create_local_tables, get_local_engine
from meter_engine.testing import FakeRuntime

# Fixed "current time" shared by the reconciler tests.
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime(default_start=NOW - timedelta(days=30))


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    """Async engine over a fresh SQLite file with the tenant table created."""
    eng = get_local_engine(tmp_path / "state.db")
    await create_local_tables(eng)
    yield eng
    await dispose_engine(eng)


@pytest.fixture
def store(engine) -> SqlTenantStore:
    return SqlTenantStore(engine)
