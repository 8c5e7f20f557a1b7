"""Test doubles and seed helpers for the metering engine."""

from meter_engine.testing.fakes import FakeRuntime, insert_tenant, load_tenant

__all__ = ["FakeRuntime", "insert_tenant", "load_tenant"]
