"""Pass modes of the lifecycle reconciler."""

from __future__ import annotations

from enum import Enum


class PassMode(str, Enum):
    """Which sweep a single invocation performs.

    ``instant`` samples usage and enforces quotas, ``daily`` suspends
    tenants whose subscription has expired, ``monthly`` reactivates
    suspended tenants at the start of a new billing cycle.
    """

    INSTANT = "instant"
    DAILY = "daily"
    MONTHLY = "monthly"
