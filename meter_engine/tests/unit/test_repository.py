"""Tests for the tenant repository and the SQL-backed tenant store.

Uses a real SQLite file so the conditional update runs against the same
ORM definitions as the MySQL backend.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from meter_engine.errors import PersistenceConflict, TenantPersistenceError, TenantQueryError
from meter_engine.models.tenant import TenantField, TenantStatus
from meter_engine.state.database import dispose_engine, get_engine, get_session, session_factory
from meter_engine.state.repository import SqlTenantStore, TenantRepository
from meter_engine.state.sqlite_adapter import create_local_tables, get_local_engine
from meter_engine.state.tables import TenantTable
from meter_engine.testing import insert_tenant, load_tenant

SAMPLED_AT = datetime(2026, 10, 19, 11, 55, tzinfo=UTC)


class TestListMetered:
    @pytest.mark.asyncio
    async def test_filters_by_status_and_container(self, engine) -> None:
        active = await insert_tenant(engine, username="a", service_id="svc-a")
        await insert_tenant(engine, username="b", service_id="")
        suspended = await insert_tenant(engine, username="c", service_id="svc-c", status=2)
        await insert_tenant(engine, username="d", service_id="svc-d", status=3)

        async with get_session(engine) as session:
            repo = TenantRepository(session)
            actives = await repo.list_metered(TenantStatus.ACTIVE)
            suspendeds = await repo.list_metered(TenantStatus.SUSPENDED)

        assert [t.id for t in actives] == [active]
        assert [t.id for t in suspendeds] == [suspended]
        assert suspendeds[0].status is TenantStatus.SUSPENDED

    @pytest.mark.asyncio
    async def test_ordered_by_id(self, engine) -> None:
        ids = [await insert_tenant(engine, username=f"u{i}", service_id=f"svc-{i}") for i in range(4)]

        async with get_session(engine) as session:
            tenants = await TenantRepository(session).list_metered(TenantStatus.ACTIVE)

        assert [t.id for t in tenants] == ids

    @pytest.mark.asyncio
    async def test_datetimes_come_back_utc_aware(self, engine) -> None:
        tid = await insert_tenant(
            engine,
            service_id="svc",
            last_stats_time=SAMPLED_AT,
            expired=SAMPLED_AT + timedelta(days=30),
        )

        tenant = await load_tenant(engine, tid)

        assert tenant.last_stats_time == SAMPLED_AT
        assert tenant.last_stats_time.tzinfo is not None
        assert tenant.expired == SAMPLED_AT + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_invalid_rows_are_logged_and_skipped(self, engine, caplog: pytest.LogCaptureFixture) -> None:
        await insert_tenant(engine, username="neg-limit", service_id="svc-1", package_limit=-1)
        valid = await insert_tenant(engine, username="ok", service_id="svc-2")
        await insert_tenant(engine, username="neg-used", service_id="svc-3", package_used=-2.0)

        with caplog.at_level("WARNING", logger="meter_engine.state.repository"):
            async with get_session(engine) as session:
                tenants = await TenantRepository(session).list_metered(TenantStatus.ACTIVE)

        assert [t.id for t in tenants] == [valid]
        messages = [r.getMessage() for r in caplog.records]
        assert any("neg-limit): invalid package_limit" in m for m in messages)
        assert any("neg-used): invalid package_used" in m for m in messages)


class TestUpdateFields:
    @pytest.mark.asyncio
    async def test_writes_only_requested_columns(self, engine) -> None:
        tid = await insert_tenant(engine, service_id="svc", package_used=1.0, last_stats_result=7)
        before = await load_tenant(engine, tid)
        changed = before.model_copy(
            update={"package_used": 3.5, "last_stats_result": 99, "status": TenantStatus.SUSPENDED}
        )

        async with get_session(engine) as session:
            rows = await TenantRepository(session).update_fields(
                changed, {TenantField.PACKAGE_USED}, expected=before
            )

        after = await load_tenant(engine, tid)
        assert rows == 1
        assert after.package_used == 3.5
        assert after.last_stats_result == 7
        assert after.status is TenantStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_guard_matches_null_sample_time(self, engine) -> None:
        tid = await insert_tenant(engine, service_id="svc")
        before = await load_tenant(engine, tid)
        changed = before.model_copy(update={"last_stats_time": SAMPLED_AT, "last_stats_result": 10})

        async with get_session(engine) as session:
            rows = await TenantRepository(session).update_fields(
                changed,
                {TenantField.LAST_STATS_TIME, TenantField.LAST_STATS_RESULT},
                expected=before,
            )

        assert rows == 1
        assert (await load_tenant(engine, tid)).last_stats_time == SAMPLED_AT

    @pytest.mark.asyncio
    async def test_stale_expected_updates_nothing(self, engine) -> None:
        tid = await insert_tenant(engine, service_id="svc", last_stats_result=5, last_stats_time=SAMPLED_AT)
        stale = (await load_tenant(engine, tid)).model_copy(update={"last_stats_result": 4})
        changed = stale.model_copy(update={"package_used": 8.0})

        async with get_session(engine) as session:
            rows = await TenantRepository(session).update_fields(
                changed, {TenantField.PACKAGE_USED}, expected=stale
            )

        assert rows == 0
        assert (await load_tenant(engine, tid)).package_used == 0.0

    @pytest.mark.asyncio
    async def test_no_fields_is_a_noop(self, engine) -> None:
        tid = await insert_tenant(engine, service_id="svc")
        tenant = await load_tenant(engine, tid)

        async with get_session(engine) as session:
            assert await TenantRepository(session).update_fields(tenant, set(), expected=tenant) == 0


class TestSqlTenantStore:
    @pytest.mark.asyncio
    async def test_persist_round_trip(self, engine, store: SqlTenantStore) -> None:
        tid = await insert_tenant(engine, service_id="svc", package_limit=4)
        [before] = await store.read_tenants(TenantStatus.ACTIVE)
        changed = before.model_copy(update={"status": TenantStatus.SUSPENDED, "package_used": 4.0})

        await store.persist_tenant(
            changed,
            frozenset({TenantField.STATUS, TenantField.PACKAGE_USED}),
            expected=before,
        )

        after = await load_tenant(engine, tid)
        assert after.status is TenantStatus.SUSPENDED
        assert after.package_used == 4.0

    @pytest.mark.asyncio
    async def test_second_write_with_same_guard_conflicts(self, engine, store: SqlTenantStore) -> None:
        await insert_tenant(engine, service_id="svc")
        [before] = await store.read_tenants(TenantStatus.ACTIVE)
        fields = frozenset({TenantField.STATUS, TenantField.PACKAGE_USED})

        await store.persist_tenant(before.model_copy(update={"status": TenantStatus.SUSPENDED}), fields, expected=before)

        with pytest.raises(PersistenceConflict, match="changed since it was read") as excinfo:
            await store.persist_tenant(before.model_copy(update={"package_used": 1.0}), fields, expected=before)
        assert excinfo.value.service_id == "svc"

    @pytest.mark.asyncio
    async def test_missing_table_is_query_error(self, tmp_path: Path) -> None:
        bare = get_local_engine(tmp_path / "empty.db")
        try:
            with pytest.raises(TenantQueryError, match="Get users error"):
                await SqlTenantStore(bare).read_tenants(TenantStatus.ACTIVE)
        finally:
            await dispose_engine(bare)

    @pytest.mark.asyncio
    async def test_write_failure_is_persistence_error(self, tmp_path: Path, engine) -> None:
        tid = await insert_tenant(engine, service_id="svc")
        tenant = await load_tenant(engine, tid)
        bare = get_local_engine(tmp_path / "empty.db")
        try:
            with pytest.raises(TenantPersistenceError, match=rf"Update user\({tid}\) error"):
                await SqlTenantStore(bare).persist_tenant(
                    tenant, frozenset({TenantField.STATUS}), expected=tenant
                )
        finally:
            await dispose_engine(bare)


class TestGetEngine:
    @pytest.mark.asyncio
    async def test_sqlite_url_uses_local_engine(self, tmp_path: Path) -> None:
        eng = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'nested' / 'state.db'}")
        try:
            assert eng.dialect.name == "sqlite"
            assert (tmp_path / "nested").is_dir()
        finally:
            await dispose_engine(eng)


class TestSessions:
    @pytest.mark.asyncio
    async def test_factory_keeps_loaded_objects_after_commit(self, engine) -> None:
        factory = session_factory(engine)

        async with get_session(factory) as session:
            row = TenantTable(username="kept", service_id="svc", status=1, package_limit=1, package_used=0.0)
            session.add(row)

        assert row.username == "kept"
        assert row.id is not None

    @pytest.mark.asyncio
    async def test_block_error_rolls_back(self, engine) -> None:
        with pytest.raises(RuntimeError):
            async with get_session(session_factory(engine)) as session:
                session.add(TenantTable(username="lost", service_id="svc", status=1, package_limit=1))
                await session.flush()
                raise RuntimeError("abort")

        async with get_session(engine) as session:
            assert await TenantRepository(session).list_metered(TenantStatus.ACTIVE) == []

    @pytest.mark.asyncio
    async def test_stores_on_separate_engines_stay_separate(self, engine, tmp_path: Path) -> None:
        other = get_local_engine(tmp_path / "other.db")
        try:
            await create_local_tables(other)
            await insert_tenant(engine, username="first", service_id="svc-1")
            await insert_tenant(other, username="second", service_id="svc-2")

            first = await SqlTenantStore(engine).read_tenants(TenantStatus.ACTIVE)
            second = await SqlTenantStore(other).read_tenants(TenantStatus.ACTIVE)
        finally:
            await dispose_engine(other)

        assert [t.username for t in first] == ["first"]
        assert [t.username for t in second] == ["second"]
