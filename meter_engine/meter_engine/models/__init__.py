"""Domain models for the metering engine."""

from meter_engine.models.mode import PassMode
from meter_engine.models.tenant import Tenant, TenantField, TenantStatus

__all__ = [
    "PassMode",
    "Tenant",
    "TenantField",
    "TenantStatus",
]
