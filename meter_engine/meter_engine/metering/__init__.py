"""Egress metering: bandwidth deltas, quota enforcement and outcome events.

Turns raw container egress counters into per-cycle gigabyte usage,
suspends tenants that exhaust their quota, and records what each pass did
to each tenant.
"""

from meter_engine.metering.delta import BYTES_PER_GB, compute_delta
from meter_engine.metering.enforcer import EnforcementResult, QuotaEnforcer, is_over_quota
from meter_engine.metering.events import OutcomeType, PassReport, TenantOutcome

__all__ = [
    "BYTES_PER_GB",
    "EnforcementResult",
    "OutcomeType",
    "PassReport",
    "QuotaEnforcer",
    "TenantOutcome",
    "compute_delta",
    "is_over_quota",
]
