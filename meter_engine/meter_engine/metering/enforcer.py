"""Quota enforcement for active tenants.

A tenant is over quota once the whole gigabytes it has used (fraction
truncated) reach its ``package_limit``.  Enforcement stops the container and
clamps the recorded usage to the limit.  A failed stop leaves the tenant
active with its usage intact; the over-quota condition persists, so the next
instant pass tries again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from meter_engine.errors import CollaboratorError
from meter_engine.models.tenant import Tenant, TenantStatus
from meter_engine.runtime.base import ContainerRuntime

logger = logging.getLogger(__name__)


def is_over_quota(package_used: float, package_limit: int) -> bool:
    """Return ``True`` when the truncated usage has reached the limit."""
    return int(package_used) >= package_limit


@dataclass(frozen=True)
class EnforcementResult:
    """Outcome of enforcing the quota on one tenant."""

    should_suspend: bool
    package_used: float
    status: TenantStatus
    stop_error: str | None = None

    @property
    def suspended(self) -> bool:
        """``True`` when this call stopped the container."""
        return self.should_suspend and self.status is TenantStatus.SUSPENDED

    def apply(self, tenant: Tenant) -> Tenant:
        """Return *tenant* with the enforced status and usage."""
        return tenant.model_copy(update={"package_used": self.package_used, "status": self.status})


class QuotaEnforcer:
    """Stops containers of tenants whose usage has reached their quota.

    Parameters
    ----------
    runtime:
        The container runtime used to stop over-quota containers.
    """

    def __init__(self, runtime: ContainerRuntime) -> None:
        self._runtime = runtime

    async def enforce(self, tenant: Tenant) -> EnforcementResult:
        """Decide whether *tenant* must be suspended, and suspend it if so.

        Already-suspended tenants are returned unchanged without touching
        the runtime.
        """
        if tenant.status is TenantStatus.SUSPENDED:
            return EnforcementResult(False, tenant.package_used, tenant.status)
        if tenant.status is not TenantStatus.ACTIVE:
            raise ValueError(f"Unhandled tenant status: {tenant.status!r}")

        if not is_over_quota(tenant.package_used, tenant.package_limit):
            return EnforcementResult(False, tenant.package_used, TenantStatus.ACTIVE)

        try:
            await self._runtime.stop_container(tenant.service_id)
        except CollaboratorError as exc:
            logger.error(
                "Stop container(%s) error: %s",
                tenant.short_service_id,
                exc,
            )
            return EnforcementResult(True, tenant.package_used, TenantStatus.ACTIVE, stop_error=str(exc))

        logger.info(
            "STOP: user(%s)-container(%s)",
            tenant.label,
            tenant.short_service_id,
        )
        return EnforcementResult(True, float(tenant.package_limit), TenantStatus.SUSPENDED)
