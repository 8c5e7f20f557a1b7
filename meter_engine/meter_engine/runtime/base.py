"""Abstract interface for the container runtime.

The reconciler reads a container's cumulative egress counter, its start
time and whether it is running, and stops or starts it.  Any backend
exposing methods with matching signatures satisfies :class:`ContainerRuntime`
(duck typing).
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ContainerRuntime(Protocol):
    """Structural interface for container runtime backends.

    Every method raises :class:`~meter_engine.errors.UnknownService` when the
    runtime has no container with the given id and
    :class:`~meter_engine.errors.RuntimeUnavailable` for any other failure.
    """

    async def query_egress_counter(self, service_id: str) -> int:
        """Return the container's cumulative transmitted bytes.

        The counter restarts from near zero whenever the container restarts.
        """
        ...

    async def query_container_start_time(self, service_id: str) -> datetime:
        """Return when the container's current process started (UTC)."""
        ...

    async def is_container_running(self, service_id: str) -> bool:
        """Return whether the container's process is currently running."""
        ...

    async def stop_container(self, service_id: str) -> None:
        """Stop the container.  Stopping a stopped container succeeds."""
        ...

    async def start_container(self, service_id: str) -> None:
        """Start the container.  Starting a running container succeeds."""
        ...
