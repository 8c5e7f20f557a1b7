"""Root logger configuration for batch invocations."""

from __future__ import annotations

import logging

from meter_engine.telemetry.json_formatter import JSONFormatter

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(structured: bool = False, level: str = "INFO") -> None:
    """Install a single stderr handler on the root logger.

    Parameters
    ----------
    structured:
        Emit one JSON object per line instead of plain text.
    level:
        Root log level name.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if structured else logging.Formatter(TEXT_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # httpx logs every request at INFO; one line per container call is noise.
    logging.getLogger("httpx").setLevel(logging.WARNING)
