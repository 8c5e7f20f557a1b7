"""Tenant record access for the metering engine.

:class:`TenantRepository` takes an ``AsyncSession`` at construction time and
operates within the caller's transaction boundary.  :class:`SqlTenantStore`
wraps it with one short transaction per call and translates SQLAlchemy
failures into the engine's error taxonomy; it is the store the reconciler
is built with.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from meter_engine.errors import PersistenceConflict, TenantPersistenceError, TenantQueryError
from meter_engine.models.tenant import Tenant, TenantField, TenantStatus
from meter_engine.state.database import get_session, session_factory
from meter_engine.state.tables import TenantTable

logger = logging.getLogger(__name__)


def _row_to_tenant(row: TenantTable) -> Tenant:
    return Tenant(
        id=row.id,
        username=row.username,
        service_id=row.service_id,
        status=TenantStatus(row.status),
        package_limit=row.package_limit,
        package_used=row.package_used,
        last_stats_result=row.last_stats_result,
        last_stats_time=row.last_stats_time,
        expired=row.expired,
    )


def _column_values(tenant: Tenant, fields: Iterable[TenantField]) -> dict[str, Any]:
    """Return the column/value mapping for the requested *fields* of *tenant*."""
    values: dict[str, Any] = {}
    for field in fields:
        if field is TenantField.STATUS:
            values["status"] = tenant.status.value
        elif field is TenantField.PACKAGE_USED:
            values["package_used"] = tenant.package_used
        elif field is TenantField.LAST_STATS_RESULT:
            values["last_stats_result"] = tenant.last_stats_result
        elif field is TenantField.LAST_STATS_TIME:
            values["last_stats_time"] = tenant.last_stats_time
        else:
            raise ValueError(f"Unsupported tenant field: {field!r}")
    return values


# ---------------------------------------------------------------------------
# TenantRepository
# ---------------------------------------------------------------------------


class TenantRepository:
    """Read and conditional-update operations on the ``user`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: int) -> Tenant | None:
        row = await self._session.get(TenantTable, tenant_id)
        return _row_to_tenant(row) if row is not None else None

    async def list_metered(self, status: TenantStatus) -> list[Tenant]:
        """Return tenants with a provisioned container in the given *status*.

        Rows whose values fail validation (negative quota or usage, say) are
        logged and left out; they are never metered or written back.
        """
        stmt = (
            select(TenantTable)
            .where(
                TenantTable.service_id != "",
                TenantTable.status == status.value,
            )
            .order_by(TenantTable.id)
        )
        result = await self._session.execute(stmt)
        tenants: list[Tenant] = []
        for row in result.scalars().all():
            try:
                tenants.append(_row_to_tenant(row))
            except ValidationError as exc:
                logger.warning(
                    "Ignoring user(%d-%s): invalid %s",
                    row.id,
                    row.username,
                    ", ".join(str(err["loc"][0]) for err in exc.errors()),
                )
        return tenants

    async def update_fields(
        self,
        tenant: Tenant,
        fields: Iterable[TenantField],
        *,
        expected: Tenant,
    ) -> int:
        """Write *fields* of *tenant* only if the row still matches *expected*.

        The guard compares the columns every mutating pass changes
        (``status``, ``last_stats_result``, ``last_stats_time``) against the
        values read at the start of the pass.

        Returns
        -------
        int
            Number of rows updated; ``0`` means the row changed concurrently.
        """
        values = _column_values(tenant, fields)
        if not values:
            return 0
        stmt = (
            update(TenantTable)
            .where(
                TenantTable.id == expected.id,
                TenantTable.status == expected.status.value,
                TenantTable.last_stats_result == expected.last_stats_result,
                TenantTable.last_stats_time == expected.last_stats_time,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount  # type: ignore[attr-defined, no-any-return]


# ---------------------------------------------------------------------------
# TenantStore
# ---------------------------------------------------------------------------


class TenantStore(Protocol):
    """Tenant record store consumed by the lifecycle reconciler."""

    async def read_tenants(self, status: TenantStatus) -> list[Tenant]:
        """Return metered tenants in *status*."""
        ...

    async def persist_tenant(
        self,
        tenant: Tenant,
        fields: frozenset[TenantField],
        *,
        expected: Tenant,
    ) -> None:
        """Write *fields* of *tenant* atomically, guarded by *expected*."""
        ...


class SqlTenantStore:
    """SQLAlchemy-backed :class:`TenantStore`.

    Parameters
    ----------
    engine:
        The async engine opened at process start.  Each call runs in its
        own transaction so one tenant's failure never rolls back another's
        update.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = session_factory(engine)

    async def read_tenants(self, status: TenantStatus) -> list[Tenant]:
        try:
            async with get_session(self._sessions) as session:
                return await TenantRepository(session).list_metered(status)
        except SQLAlchemyError as exc:
            raise TenantQueryError(f"Get users error: {exc}") from exc

    async def persist_tenant(
        self,
        tenant: Tenant,
        fields: frozenset[TenantField],
        *,
        expected: Tenant,
    ) -> None:
        try:
            async with get_session(self._sessions) as session:
                updated = await TenantRepository(session).update_fields(tenant, fields, expected=expected)
        except SQLAlchemyError as exc:
            raise TenantPersistenceError(
                f"Update user({tenant.id}) error: {exc}",
                service_id=tenant.service_id,
            ) from exc

        if updated == 0:
            raise PersistenceConflict(
                f"user({tenant.id}) changed since it was read",
                service_id=tenant.service_id,
            )
        logger.debug("Persisted user(%d) fields=%s", tenant.id, sorted(f.value for f in fields))
