"""
Amount summary maintenance commands.
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
    help="Check and refresh stored amount summaries",
    no_args_is_help=True,
)


def _print_report(report) -> None:
    table = Table(title="Amount Versions", show_header=True, header_style="bold magenta")
    table.add_column("Version", style="cyan")
    table.add_column("Releases", justify="right")

    for version, count in sorted(report.by_version.items(), key=lambda kv: (kv[0] is None, kv[0] or 0)):
        label = "none" if version is None else str(version)
        if version == report.target_version:
            label = f"[green]{label} (current)[/green]"
        table.add_row(label, str(count))

    console.print(table)


@app.command("check")
def check_amounts(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to app.yaml"),
) -> None:
    """Count releases whose amount summary is out of date."""
    from comprawatch.core.amounts.engine import AmountCalculator
    from comprawatch.core.amounts.maintenance import AmountMaintenance
    from comprawatch.core.rates.provider import RateTableSnapshot
    from comprawatch.persistence.db import get_session

    config = bootstrap(config_path)
    calculator = AmountCalculator.from_config(config.rates)

    with get_session() as session:
        report = AmountMaintenance(session, RateTableSnapshot.empty(), calculator).check()

    _print_report(report)
    if report.stale:
        console.print(f"[yellow]{report.stale} releases need an update to version {report.target_version}[/yellow]")
        console.print("Run: [yellow]comprawatch amounts refresh[/yellow]")
    else:
        console.print("[green]OK[/green] All amount summaries are current")


@app.command("refresh")
def refresh_amounts(
    batch_size: int = typer.Option(500, "--batch-size", "-b", help="Releases per batch"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Stop after this many releases"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to app.yaml"),
) -> None:
    """Recompute stale amount summaries with current exchange rates."""
    from comprawatch.core.amounts.engine import AmountCalculator
    from comprawatch.core.amounts.maintenance import AmountMaintenance
    from comprawatch.core.rates.provider import RateTableProvider
    from comprawatch.persistence.db import get_session

    config = bootstrap(config_path)
    calculator = AmountCalculator.from_config(config.rates)
    snapshot = asyncio.run(RateTableProvider.from_config(config.rates).fetch())

    if not snapshot.has_live_rates:
        console.print("[yellow]Live rates unavailable - using fallback rates[/yellow]")

    with get_session() as session:
        report = AmountMaintenance(session, snapshot, calculator).refresh(batch_size=batch_size, limit=limit)

    console.print(f"[green]OK[/green] Refreshed {report.refreshed} of {report.stale} stale amount summaries")
