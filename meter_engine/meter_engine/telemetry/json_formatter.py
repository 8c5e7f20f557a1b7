"""JSON log formatter for log aggregation.

Emits each log record as a single-line JSON object containing structured
fields that downstream aggregators (Datadog, Splunk, CloudWatch Logs, ELK,
etc.) can index without regex parsing.

Activate with ``METER_STRUCTURED_LOGGING=true`` or ``[logging] structured =
true`` in the config file.

Output schema per line::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "meter_engine.lifecycle.reconciler",
        "message": "SAMPLED: user(7-alice)-container(3f2a9c1d0b7e)-bandwidth(0.47)",
        "tenant": { ... },           // present on per-tenant outcome lines
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Per-tenant outcome context emitted by the reconciler via
        # ``extra={"tenant": ...}``.
        tenant_data = getattr(record, "tenant", None)
        if tenant_data is not None:
            payload["tenant"] = tenant_data

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)
