"""Error taxonomy for the metering engine.

Fatal errors (:class:`ConfigurationError`, :class:`TenantQueryError`) abort
the process before or during a pass.  Everything derived from
:class:`CollaboratorError` is scoped to a single tenant: the reconciler logs
it, records the tenant as skipped, and moves on to the next one.
"""

from __future__ import annotations


class MeterError(Exception):
    """Base class for all metering engine errors."""


class ConfigurationError(MeterError):
    """Settings or the config file could not be loaded."""


class TenantQueryError(MeterError):
    """The tenant set for a pass could not be read."""


class CollaboratorError(MeterError):
    """A per-tenant call to the runtime or the tenant store failed."""

    def __init__(self, message: str, *, service_id: str = "") -> None:
        super().__init__(message)
        self.service_id = service_id


class RuntimeUnavailable(CollaboratorError):
    """The container runtime could not be reached or returned an error."""


class UnknownService(CollaboratorError):
    """The container runtime has no container with the given id."""


class TenantPersistenceError(CollaboratorError):
    """Writing a tenant row failed."""


class PersistenceConflict(CollaboratorError):
    """The tenant row changed between read and conditional update."""
