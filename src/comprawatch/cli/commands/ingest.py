"""
Ingestion commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..runtime import bootstrap

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run ingestion cycles",
    no_args_is_help=True,
)


def _parse_periods(values: list[str] | None):
    from comprawatch.core.feed.discovery import Period

    periods = []
    for value in values or []:
        try:
            periods.append(Period.parse(value))
        except ValueError as e:
            err_console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
    return periods


@app.command("run")
def run_ingestion_command(
    period: Optional[list[str]] = typer.Option(
        None,
        "--period",
        "-p",
        help="Period to ingest (YYYY-MM or YYYY); repeatable. Default: start period to current month",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Discover and deduplicate only; nothing is fetched or saved",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml",
    ),
) -> None:
    """Run one ingestion cycle.

    Examples:
        comprawatch ingest run
        comprawatch ingest run --period 2025-03 --period 2025-04
        comprawatch ingest run -p 2024 --dry-run
    """
    from comprawatch.core.config.models import RunType
    from comprawatch.core.orchestrator.runner import run_ingestion
    from comprawatch.persistence.db import dispose_engines, init_db

    periods = _parse_periods(period)
    config = bootstrap(config_path)
    init_db()

    if dry_run:
        console.print("[yellow]Dry run mode - nothing will be fetched or saved[/yellow]")

    try:
        stats = asyncio.run(
            run_ingestion(config, periods=periods or None, run_type=RunType.CLI, dry_run=dry_run)
        )
    except Exception as e:
        err_console.print(f"[red]Ingestion failed:[/red] {e}")
        raise typer.Exit(1)
    finally:
        dispose_engines()

    table = Table(title="Ingestion Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    for key, value in stats.to_dict().items():
        if key == "periods":
            value = ", ".join(value)
        elif key == "duration_seconds" and value is not None:
            value = f"{value:.1f}s"
        table.add_row(key.replace("_", " ").title(), str(value))

    console.print()
    console.print(table)

    if stats.periods_failed:
        err_console.print(f"[yellow]{stats.periods_failed} period(s) failed, see logs[/yellow]")


@app.command("discover")
def discover_command(
    period: str = typer.Argument(..., help="Period (YYYY-MM or YYYY)"),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Number of releases to show",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml",
    ),
) -> None:
    """List the releases published for a period (no database needed)."""
    from comprawatch.core.backends.http_backend import HttpBackend
    from comprawatch.core.feed.discovery import FeedDiscovery

    (target,) = _parse_periods([period])
    config = bootstrap(config_path, require_database=False)

    async def _discover():
        backend = HttpBackend.from_config(config.feed)
        try:
            discovery = FeedDiscovery(
                backend,
                base_url=config.feed.base_url,
                month_delay_seconds=config.ingestion.group_delay_seconds,
            )
            return await discovery.discover(target)
        finally:
            await backend.close()

    try:
        descriptors = asyncio.run(_discover())
    except Exception as e:
        err_console.print(f"[red]Discovery failed:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title=f"Releases for {target} ({len(descriptors)})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Published")
    table.add_column("Title", max_width=60)

    for descriptor in descriptors[:limit]:
        published = descriptor.publish_date.strftime("%Y-%m-%d %H:%M") if descriptor.publish_date else "-"
        table.add_row(descriptor.id, published, descriptor.title)

    console.print(table)
    if len(descriptors) > limit:
        console.print(f"[dim]... and {len(descriptors) - limit} more[/dim]")
