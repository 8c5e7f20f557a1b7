"""Per-tenant outcome events emitted by a reconciler pass.

Each pass produces exactly one :class:`TenantOutcome` for every tenant it
selected.  Outcomes are logged as they happen, collected, optionally flushed
to a sink (JSON lines file), and summarised in a :class:`PassReport`.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from meter_engine.models.mode import PassMode


class OutcomeType(str, Enum):
    """What a pass did to one tenant."""

    SAMPLED = "sampled"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    REACTIVATED = "reactivated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


class TenantOutcome(BaseModel):
    """The result of processing a single tenant in a pass.

    Attributes
    ----------
    event_id:
        Unique identifier for this event.
    mode:
        The pass that produced the event.
    tenant_id:
        The tenant the event is about.
    username:
        Display label of the tenant.
    service_id:
        Abbreviated (12 character) container id.
    outcome:
        What happened.
    bandwidth_gb:
        Usage added by this sample (instant passes only).
    package_used:
        The tenant's usage after the pass.
    reason:
        Why the tenant was skipped or left unchanged, or why a stop failed.
    timestamp:
        When the outcome was recorded (UTC).
    """

    event_id: str = Field(default_factory=lambda: f"evt-{uuid.uuid4().hex[:12]}")
    mode: PassMode
    tenant_id: int
    username: str = ""
    service_id: str = ""
    outcome: OutcomeType
    bandwidth_gb: float | None = None
    package_used: float | None = None
    reason: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PassReport(BaseModel):
    """Summary of one reconciler pass."""

    mode: PassMode
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[TenantOutcome] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        """Number of tenants per outcome type (types with no tenants omitted)."""
        summary: dict[str, int] = {}
        for item in self.outcomes:
            key = item.outcome.value
            summary[key] = summary.get(key, 0) + 1
        return summary

    @property
    def skipped(self) -> list[TenantOutcome]:
        return [item for item in self.outcomes if item.outcome is OutcomeType.SKIPPED]
