"""Tenant domain model.

A tenant is the unit of metering and lifecycle control: one billed user
mapped to at most one backing container.  Instances are immutable; passes
derive updated copies via ``model_copy(update=...)`` so the row state that
was read stays available as the guard for the conditional write.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TenantStatus(int, Enum):
    """Lifecycle state of a tenant's container.

    Values match the integers persisted in the tenant table.  Rows holding
    any other value (the legacy terminated state) are never selected.
    """

    ACTIVE = 1
    SUSPENDED = 2


class TenantField(str, Enum):
    """Columns a pass may write back to the tenant row."""

    STATUS = "status"
    PACKAGE_USED = "package_used"
    LAST_STATS_RESULT = "last_stats_result"
    LAST_STATS_TIME = "last_stats_time"


class Tenant(BaseModel):
    """Snapshot of a tenant row as read by a pass."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Stable tenant identifier.")
    username: str = Field(default="", description="Display label.")
    service_id: str = Field(
        default="",
        description="Backing container id; empty when no container is provisioned.",
    )
    status: TenantStatus = Field(..., description="Current lifecycle state.")
    package_limit: int = Field(default=0, ge=0, description="Quota in whole gigabytes.")
    package_used: float = Field(default=0.0, ge=0.0, description="Gigabytes consumed this cycle.")
    last_stats_result: int = Field(
        default=0,
        ge=0,
        description="Last raw cumulative egress counter observed.",
    )
    last_stats_time: datetime | None = Field(
        default=None,
        description="When the counter was last sampled (UTC).",
    )
    expired: datetime | None = Field(
        default=None,
        description="End of the current subscription period (UTC).",
    )

    @property
    def short_service_id(self) -> str:
        """First 12 characters of the container id, as Docker abbreviates it."""
        return self.service_id[:12]

    @property
    def label(self) -> str:
        return f"{self.id}-{self.username}"
