"""Logging setup for the metering engine."""

from meter_engine.telemetry.json_formatter import JSONFormatter
from meter_engine.telemetry.log_config import configure_logging

__all__ = ["JSONFormatter", "configure_logging"]
