"""Selection and persistence rules for each pass mode.

All three passes share one read-compute-write shape; a mode only decides
which tenants it selects and which columns its transition writes back.

==========  ===========  ===============================================
mode        selects      writes
==========  ===========  ===============================================
instant     ACTIVE       package_used, last_stats_result/time, status
daily       ACTIVE       package_used, status
monthly     SUSPENDED    package_used, status
==========  ===========  ===============================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from meter_engine.models.mode import PassMode
from meter_engine.models.tenant import Tenant, TenantField, TenantStatus


@dataclass(frozen=True)
class ModeRule:
    """What one pass mode selects and persists."""

    selects: TenantStatus
    persisted_fields: frozenset[TenantField]


MODE_RULES: dict[PassMode, ModeRule] = {
    PassMode.INSTANT: ModeRule(
        selects=TenantStatus.ACTIVE,
        persisted_fields=frozenset(
            {
                TenantField.PACKAGE_USED,
                TenantField.LAST_STATS_RESULT,
                TenantField.LAST_STATS_TIME,
                TenantField.STATUS,
            }
        ),
    ),
    PassMode.DAILY: ModeRule(
        selects=TenantStatus.ACTIVE,
        persisted_fields=frozenset({TenantField.PACKAGE_USED, TenantField.STATUS}),
    ),
    PassMode.MONTHLY: ModeRule(
        selects=TenantStatus.SUSPENDED,
        persisted_fields=frozenset({TenantField.PACKAGE_USED, TenantField.STATUS}),
    ),
}


def rule_for(mode: PassMode) -> ModeRule:
    try:
        return MODE_RULES[mode]
    except KeyError:
        raise ValueError(f"Unknown pass mode: {mode!r}") from None


def is_expired(tenant: Tenant, now: datetime) -> bool:
    """``True`` once the subscription end lies in the past.

    A tenant without an expiration date has an open-ended subscription.
    """
    return tenant.expired is not None and tenant.expired < now


def subscription_valid(tenant: Tenant, now: datetime) -> bool:
    return not is_expired(tenant, now)
