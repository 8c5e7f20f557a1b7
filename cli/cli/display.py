"""Rich output formatting for the egressmeter CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from rich.console import Console

    from meter_engine.metering.events import PassReport
    from meter_engine.models.tenant import Tenant


# ---------------------------------------------------------------------------
# Outcome colour mapping
# ---------------------------------------------------------------------------

_OUTCOME_COLOURS: dict[str, str] = {
    "sampled": "green",
    "suspended": "red",
    "expired": "red",
    "reactivated": "cyan",
    "unchanged": "dim",
    "skipped": "yellow",
}

_STATUS_COLOURS: dict[str, str] = {
    "ACTIVE": "green",
    "SUSPENDED": "red",
}


def _coloured(value: str, colours: dict[str, str]) -> str:
    """Return a Rich markup string with *value* colour-coded."""
    colour = colours.get(value, "white")
    return f"[{colour}]{value}[/{colour}]"


def _fmt_gb(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}"


# ---------------------------------------------------------------------------
# Pass report
# ---------------------------------------------------------------------------


def display_pass_report(console: Console, report: PassReport) -> None:
    """Render a pass summary panel followed by one row per tenant.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    report:
        The report returned by the reconciler.
    """
    counts = report.counts
    summary = ", ".join(f"{key}={value}" for key, value in sorted(counts.items())) or "no tenants"
    duration = ""
    if report.finished_at is not None:
        duration = f"{(report.finished_at - report.started_at).total_seconds():.1f}s"
    header_lines = [
        f"[bold]Mode:[/bold]     {report.mode.value}",
        f"[bold]Started:[/bold]  {report.started_at.isoformat(timespec='seconds')}",
        f"[bold]Duration:[/bold] {duration or '-'}",
        f"[bold]Tenants:[/bold]  {len(report.outcomes)} ({summary})",
    ]
    console.print(Panel("\n".join(header_lines), title="Metering Pass", border_style="blue"))

    if not report.outcomes:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("User", style="bold")
    table.add_column("Container")
    table.add_column("Outcome")
    table.add_column("Bandwidth (GB)", justify="right")
    table.add_column("Used (GB)", justify="right")
    table.add_column("Reason", style="dim")

    for item in report.outcomes:
        table.add_row(
            f"{item.tenant_id}-{item.username}",
            item.service_id,
            _coloured(item.outcome.value, _OUTCOME_COLOURS),
            _fmt_gb(item.bandwidth_gb),
            _fmt_gb(item.package_used),
            item.reason or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Tenant list
# ---------------------------------------------------------------------------


def display_tenants(console: Console, tenants: list[Tenant]) -> None:
    """Render metered tenants with their quota usage."""
    table = Table(title="Metered Tenants", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("User", style="bold")
    table.add_column("Container")
    table.add_column("Status")
    table.add_column("Used / Limit (GB)", justify="right")
    table.add_column("Last Sample")
    table.add_column("Expires")

    for tenant in tenants:
        table.add_row(
            str(tenant.id),
            tenant.username,
            tenant.short_service_id,
            _coloured(tenant.status.name, _STATUS_COLOURS),
            f"{tenant.package_used:.2f} / {tenant.package_limit}",
            tenant.last_stats_time.isoformat(timespec="seconds") if tenant.last_stats_time else "-",
            tenant.expired.date().isoformat() if tenant.expired else "-",
        )
    console.print(table)
