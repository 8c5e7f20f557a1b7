"""egressmeter CLI application -- Typer-based batch entry point.

Each invocation runs exactly one reconciler pass; an external scheduler
(cron) decides when.  A typical crontab::

    */5 * * * *  egressmeter run --mode instant -c /etc/egressmeter/config.toml
    10 0 * * *   egressmeter run --mode daily   -c /etc/egressmeter/config.toml
    20 0 1 * *   egressmeter run --mode monthly -c /etc/egressmeter/config.toml

Human-readable output goes to *stderr* via Rich; ``--json`` writes the pass
report to *stdout* and ``--metrics-file`` appends one JSON line per tenant
outcome so that pipelines can compose cleanly.

Exit codes: ``0`` pass completed (individual tenants may have been
skipped), ``2`` configuration error, ``3`` the pass could not run.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from rich.console import Console

from cli.display import display_pass_report, display_tenants
from meter_engine.config import DEFAULT_CONFIG_PATH
from meter_engine.errors import ConfigurationError, TenantQueryError
from meter_engine.models.mode import PassMode
from meter_engine.models.tenant import TenantStatus

if TYPE_CHECKING:
    from meter_engine.config import Settings
    from meter_engine.metering.events import PassReport
    from meter_engine.models.tenant import Tenant

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="egressmeter",
    help="Per-tenant container egress metering and quota lifecycle.",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_metrics_file: Path | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    metrics_file: Path | None = typer.Option(
        None,
        "--metrics-file",
        help="Append one JSON line per tenant outcome to this file.",
        envvar="METER_METRICS_FILE",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _metrics_file  # noqa: PLW0603
    _json_output = json_mode
    _metrics_file = metrics_file


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load(config: Path) -> Settings:
    """Load settings and configure logging, exiting with code 2 on failure."""
    from meter_engine.config import load_settings
    from meter_engine.telemetry import configure_logging

    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc

    configure_logging(structured=settings.structured_logging, level=settings.log_level)
    return settings


async def _run_pass(settings: Settings, mode: PassMode, metrics_file: Path | None) -> PassReport:
    """Open the store and runtime, run one pass, and close both."""
    from meter_engine.lifecycle import LifecycleReconciler
    from meter_engine.metering.collector import FileSink, OutcomeCollector
    from meter_engine.runtime import DockerRuntime
    from meter_engine.state import SqlTenantStore, dispose_engine, get_engine

    engine = get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    runtime = DockerRuntime(
        host=settings.docker_host,
        api_version=settings.docker_api_version,
        timeout=settings.runtime_timeout,
    )
    collector = OutcomeCollector(FileSink(metrics_file)) if metrics_file is not None else None
    try:
        reconciler = LifecycleReconciler(SqlTenantStore(engine), runtime, collector=collector)
        return await reconciler.run(mode)
    finally:
        await runtime.aclose()
        await dispose_engine(engine)


async def _list_tenants(settings: Settings, statuses: list[TenantStatus]) -> list[Tenant]:
    from meter_engine.state import SqlTenantStore, dispose_engine, get_engine

    engine = get_engine(settings.database_url, pool_size=1, max_overflow=0)
    try:
        store = SqlTenantStore(engine)
        tenants: list[Tenant] = []
        for status in statuses:
            tenants.extend(await store.read_tenants(status))
        return sorted(tenants, key=lambda t: t.id)
    finally:
        await dispose_engine(engine)


def _report_to_dict(report: PassReport) -> dict[str, Any]:
    return {
        "mode": report.mode.value,
        "started_at": report.started_at.isoformat(),
        "finished_at": report.finished_at.isoformat() if report.finished_at else None,
        "counts": report.counts,
        "outcomes": [item.model_dump(mode="json") for item in report.outcomes],
    }


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@app.command()
def run(
    mode: PassMode = typer.Option(
        PassMode.INSTANT,
        "--mode",
        "-m",
        case_sensitive=False,
        help="Pass to run: instant (sample + enforce), daily (expire), monthly (reactivate).",
    ),
    config: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the TOML config file holding store and runtime credentials.",
    ),
) -> None:
    """Run one metering pass over all eligible tenants."""
    settings = _load(config)

    try:
        report = asyncio.run(_run_pass(settings, mode, _metrics_file))
    except TenantQueryError as exc:
        console.print(f"[red]{mode.value} pass aborted: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        sys.stdout.write(json.dumps(_report_to_dict(report), indent=2) + "\n")
    else:
        display_pass_report(console, report)


# ---------------------------------------------------------------------------
# tenants
# ---------------------------------------------------------------------------


@app.command()
def tenants(
    status: str | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show tenants in this status (active | suspended).",
    ),
    config: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the TOML config file holding store credentials.",
    ),
) -> None:
    """List tenants with a provisioned container and their quota usage."""
    statuses = list(TenantStatus)
    if status is not None:
        try:
            statuses = [TenantStatus[status.upper()]]
        except KeyError as exc:
            console.print(f"[red]Invalid status '{status}': expected active or suspended[/red]")
            raise typer.Exit(code=2) from exc

    settings = _load(config)

    try:
        rows = asyncio.run(_list_tenants(settings, statuses))
    except TenantQueryError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        sys.stdout.write(json.dumps([t.model_dump(mode="json") for t in rows], indent=2) + "\n")
    elif not rows:
        console.print("[yellow]No metered tenants found.[/yellow]")
    else:
        display_tenants(console, rows)
