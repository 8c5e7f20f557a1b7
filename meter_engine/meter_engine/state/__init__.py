"""Tenant record persistence using SQLAlchemy."""

from meter_engine.state.database import dispose_engine, get_engine, get_session, session_factory
from meter_engine.state.repository import SqlTenantStore, TenantRepository, TenantStore

__all__ = [
    "SqlTenantStore",
    "TenantRepository",
    "TenantStore",
    "dispose_engine",
    "get_engine",
    "get_session",
    "session_factory",
]
