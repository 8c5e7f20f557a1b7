"""SQLAlchemy 2.0 ORM table definitions for the tenant record store.

The ``user`` table is owned by the external provisioning process; this
module only maps the columns the metering engine reads and writes.  The
``Base`` declarative base is exported so that local SQLite databases and
tests can create the schema.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Stores naive UTC datetimes and always returns UTC-aware values.

    MySQL ``DATETIME`` and SQLite have no timezone support, so aware values
    are normalised to UTC on the way in and re-tagged on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(UTC).replace(tzinfo=None)
        return value

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for the tenant store tables."""


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantTable(Base):
    """One billed user and their optional backing container."""

    __tablename__ = "user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    service_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    package_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    package_used: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_stats_result: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_stats_time: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    expired: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (Index("ix_user_status_service", "status", "service_id"),)
