"""Lifecycle reconciler: one pass over the tenant set in a given mode.

The reconciler is the top-level state machine of the engine.  A pass reads
the tenants its mode selects, applies the mode's transition to each one in
turn, and writes the result back with a conditional update.  Tenants are
independent: a runtime or persistence failure on one is logged, recorded as
``skipped`` and the pass carries on.  Only a failure to read the tenant set
aborts the pass.

Transitions per mode:

* ``instant``: sample the egress counter, add the delta to the tenant's
  usage, and stop the container once the quota is reached.
* ``daily``: stop the container of every tenant whose subscription has
  expired and clamp its usage to the quota.
* ``monthly``: restart the container of every suspended tenant whose
  subscription is still valid and reset its usage for the new cycle.

Nothing is retried in-process; the next scheduled pass re-evaluates every
tenant from its persisted state.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from meter_engine.errors import CollaboratorError, RuntimeUnavailable
from meter_engine.lifecycle.modes import ModeRule, is_expired, rule_for, subscription_valid
from meter_engine.metering.collector import OutcomeCollector
from meter_engine.metering.delta import compute_delta
from meter_engine.metering.enforcer import QuotaEnforcer, is_over_quota
from meter_engine.metering.events import OutcomeType, PassReport, TenantOutcome
from meter_engine.models.mode import PassMode
from meter_engine.models.tenant import Tenant, TenantStatus
from meter_engine.runtime.base import ContainerRuntime
from meter_engine.state.repository import TenantStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Transition = Callable[[Tenant, ModeRule, datetime], Awaitable[TenantOutcome]]

_LOG_LEVELS: dict[OutcomeType, int] = {
    OutcomeType.SKIPPED: logging.WARNING,
    OutcomeType.UNCHANGED: logging.DEBUG,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LifecycleReconciler:
    """Runs instant, daily and monthly passes over the tenant store.

    Parameters
    ----------
    store:
        Tenant record store, opened for the lifetime of the process.
    runtime:
        Container runtime used for counters and start/stop commands.
    collector:
        Optional collector receiving one outcome event per tenant.
    clock:
        Source of the current UTC time; read once at the start of a pass.
    """

    def __init__(
        self,
        store: TenantStore,
        runtime: ContainerRuntime,
        *,
        collector: OutcomeCollector | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._runtime = runtime
        self._enforcer = QuotaEnforcer(runtime)
        self._collector = collector
        self._clock = clock or _utcnow
        self._transitions: dict[PassMode, Transition] = {
            PassMode.INSTANT: self._sample,
            PassMode.DAILY: self._expire,
            PassMode.MONTHLY: self._reactivate,
        }

    async def run(self, mode: PassMode) -> PassReport:
        """Execute one pass in *mode* and return its report.

        Raises
        ------
        TenantQueryError
            If the tenant set cannot be read.  No tenant has been touched.
        """
        rule = rule_for(mode)
        transition = self._transitions[mode]
        now = self._clock()
        report = PassReport(mode=mode, started_at=now)

        logger.info("Start %s pass ...", mode.value)
        tenants = await self._store.read_tenants(rule.selects)
        logger.info("Loaded %d tenant(s) with status %s", len(tenants), rule.selects.name)

        for tenant in tenants:
            if tenant.status is not rule.selects:
                outcome = self._outcome(
                    mode,
                    tenant,
                    OutcomeType.SKIPPED,
                    reason=f"status {tenant.status.name} not handled by {mode.value} pass",
                )
            else:
                try:
                    outcome = await transition(tenant, rule, now)
                except CollaboratorError as exc:
                    outcome = self._outcome(mode, tenant, OutcomeType.SKIPPED, reason=str(exc))
            self._emit(outcome)
            report.outcomes.append(outcome)

        if self._collector is not None:
            self._collector.flush()

        report.finished_at = self._clock()
        logger.info("Done ! %s pass: %s", mode.value, report.counts or "no tenants")
        return report

    # -- Transitions ---------------------------------------------------------

    async def _sample(self, tenant: Tenant, rule: ModeRule, now: datetime) -> TenantOutcome:
        """Meter the tenant's egress since the last sample and enforce its quota.

        An ACTIVE row whose usage already reached the quota, or whose
        container is no longer running, is left over from a stop whose
        write-back failed.  Such tenants are suspended without sampling.
        """
        if is_over_quota(tenant.package_used, tenant.package_limit):
            return await self._suspend_over_quota(tenant, rule)

        try:
            raw = await self._runtime.query_egress_counter(tenant.service_id)
        except RuntimeUnavailable:
            if await self._runtime.is_container_running(tenant.service_id):
                raise
            return await self._suspend_stopped(tenant, rule)
        started = await self._runtime.query_container_start_time(tenant.service_id)

        bandwidth = compute_delta(tenant.last_stats_result, tenant.last_stats_time, raw, started)
        sampled = tenant.model_copy(
            update={
                "package_used": tenant.package_used + bandwidth,
                "last_stats_result": raw,
                "last_stats_time": now,
            }
        )
        enforcement = await self._enforcer.enforce(sampled)
        updated = enforcement.apply(sampled)

        await self._store.persist_tenant(updated, rule.persisted_fields, expected=tenant)
        return self._outcome(
            PassMode.INSTANT,
            updated,
            OutcomeType.SUSPENDED if enforcement.suspended else OutcomeType.SAMPLED,
            bandwidth_gb=bandwidth,
            reason=enforcement.stop_error,
        )

    async def _suspend_over_quota(self, tenant: Tenant, rule: ModeRule) -> TenantOutcome:
        enforcement = await self._enforcer.enforce(tenant)
        if not enforcement.suspended:
            return self._outcome(PassMode.INSTANT, tenant, OutcomeType.SKIPPED, reason=enforcement.stop_error)
        updated = enforcement.apply(tenant)
        await self._store.persist_tenant(updated, rule.persisted_fields, expected=tenant)
        return self._outcome(PassMode.INSTANT, updated, OutcomeType.SUSPENDED, reason="quota already reached")

    async def _suspend_stopped(self, tenant: Tenant, rule: ModeRule) -> TenantOutcome:
        updated = tenant.model_copy(update={"status": TenantStatus.SUSPENDED})
        await self._store.persist_tenant(updated, rule.persisted_fields, expected=tenant)
        return self._outcome(PassMode.INSTANT, updated, OutcomeType.SUSPENDED, reason="container not running")

    async def _expire(self, tenant: Tenant, rule: ModeRule, now: datetime) -> TenantOutcome:
        """Suspend the tenant if its subscription has ended."""
        if not is_expired(tenant, now):
            return self._outcome(PassMode.DAILY, tenant, OutcomeType.UNCHANGED, reason="subscription valid")

        await self._runtime.stop_container(tenant.service_id)
        updated = tenant.model_copy(
            update={
                "status": TenantStatus.SUSPENDED,
                "package_used": float(tenant.package_limit),
            }
        )
        await self._store.persist_tenant(updated, rule.persisted_fields, expected=tenant)
        return self._outcome(PassMode.DAILY, updated, OutcomeType.EXPIRED)

    async def _reactivate(self, tenant: Tenant, rule: ModeRule, now: datetime) -> TenantOutcome:
        """Start a new billing cycle for a tenant suspended only for quota."""
        if not subscription_valid(tenant, now):
            return self._outcome(PassMode.MONTHLY, tenant, OutcomeType.UNCHANGED, reason="subscription expired")

        await self._runtime.start_container(tenant.service_id)
        updated = tenant.model_copy(update={"status": TenantStatus.ACTIVE, "package_used": 0.0})
        await self._store.persist_tenant(updated, rule.persisted_fields, expected=tenant)
        return self._outcome(PassMode.MONTHLY, updated, OutcomeType.REACTIVATED)

    # -- Reporting -----------------------------------------------------------

    @staticmethod
    def _outcome(
        mode: PassMode,
        tenant: Tenant,
        outcome: OutcomeType,
        *,
        bandwidth_gb: float | None = None,
        reason: str | None = None,
    ) -> TenantOutcome:
        return TenantOutcome(
            mode=mode,
            tenant_id=tenant.id,
            username=tenant.username,
            service_id=tenant.short_service_id,
            outcome=outcome,
            bandwidth_gb=bandwidth_gb,
            package_used=tenant.package_used,
            reason=reason,
        )

    def _emit(self, outcome: TenantOutcome) -> None:
        """Log one structured line for *outcome* and hand it to the collector."""
        detail = ""
        if outcome.bandwidth_gb is not None:
            detail += f"-bandwidth({outcome.bandwidth_gb:.2f})"
        if outcome.reason:
            detail += f": {outcome.reason}"
        logger.log(
            _LOG_LEVELS.get(outcome.outcome, logging.INFO),
            "%s: user(%d-%s)-container(%s)%s",
            outcome.outcome.value.upper(),
            outcome.tenant_id,
            outcome.username,
            outcome.service_id,
            detail,
            extra={"tenant": outcome.model_dump(mode="json")},
        )
        if self._collector is not None:
            self._collector.record(outcome)
