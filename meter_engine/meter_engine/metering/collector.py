"""Buffering of per-tenant outcome events.

The reconciler hands every :class:`TenantOutcome` to an
:class:`OutcomeCollector`, which batches them for an :class:`OutcomeSink`.
The batch is written whenever the buffer fills up and once more at the end
of the pass.  :class:`FileSink` appends JSON lines to a local file and
backs the CLI's ``--metrics-file`` option.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from meter_engine.metering.events import TenantOutcome

logger = logging.getLogger(__name__)


class OutcomeSink(Protocol):
    """Destination for batches of outcome events."""

    def flush(self, events: Sequence[TenantOutcome]) -> None: ...


class FileSink:
    """JSON lines file that outcome batches are appended to."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def flush(self, events: Sequence[TenantOutcome]) -> None:
        if not events:
            return
        lines = "".join(f"{event.model_dump_json()}\n" for event in events)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(lines)
        logger.debug("Appended %d outcome(s) to %s", len(events), self.path)


class OutcomeCollector:
    """Batches outcome events for a sink.

    Parameters
    ----------
    sink:
        Where batches are written.
    max_buffer_size:
        Buffered events that trigger an early flush (default: 500).
    """

    def __init__(self, sink: OutcomeSink, max_buffer_size: int = 500) -> None:
        self._sink = sink
        self._max_buffer_size = max_buffer_size
        self._pending: list[TenantOutcome] = []

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record(self, event: TenantOutcome) -> None:
        self._pending.append(event)
        if len(self._pending) >= self._max_buffer_size:
            self.flush()

    def flush(self) -> int:
        """Write pending events to the sink and return how many there were.

        A sink that fails with an I/O error loses its batch; the failure is
        logged and never reaches the pass.
        """
        batch, self._pending = self._pending, []
        if batch:
            try:
                self._sink.flush(batch)
            except OSError:
                logger.warning("Outcome flush failed; %d events lost", len(batch), exc_info=True)
        return len(batch)
