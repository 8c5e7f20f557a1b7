"""Shared fixtures for CLI tests.

Commands install a root logging handler on startup; tests replace that
step with a no-op so pytest's own log capture stays in place.
"""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> Iterator[MagicMock]:
    monkeypatch.delenv("METER_METRICS_FILE", raising=False)
    with patch("meter_engine.telemetry.configure_logging") as mock_configure:
        yield mock_configure
