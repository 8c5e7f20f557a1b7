"""Tenant lifecycle passes (instant, daily, monthly)."""

from meter_engine.lifecycle.modes import MODE_RULES, ModeRule, is_expired, rule_for, subscription_valid
from meter_engine.lifecycle.reconciler import LifecycleReconciler

__all__ = [
    "MODE_RULES",
    "LifecycleReconciler",
    "ModeRule",
    "is_expired",
    "rule_for",
    "subscription_valid",
]
