"""
CompraWatch CLI - Main entry point.

Incremental ingestion of public procurement releases with a daily
scheduler, amount maintenance and database tooling.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from comprawatch import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

console = Console()
err_console = Console(stderr=True)

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Incremental ingestion of public procurement releases",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """CompraWatch - Procurement release ingestion."""
    pass


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import amounts, db, ingest, serve  # noqa: E402

app.add_typer(ingest.app, name="ingest", help="Run ingestion cycles")
app.add_typer(amounts.app, name="amounts", help="Check and refresh amount summaries")
app.add_typer(db.app, name="db", help="Database operations")
app.command("serve")(serve.serve)


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize CompraWatch configuration and database.

    Creates required directories, the default configuration file, and the
    database schema when DATABASE_URL is set.
    """
    from comprawatch.core.config.loader import DEFAULT_CONFIG_PATH

    from .runtime import bootstrap

    for dir_path in (Path("configs"), Path("data"), Path("logs")):
        dir_path.mkdir(parents=True, exist_ok=True)

    created_config = False
    if not DEFAULT_CONFIG_PATH.exists() or force:
        _create_default_app_config(DEFAULT_CONFIG_PATH)
        created_config = True

    config = bootstrap(require_database=False, rich_console=False)

    database_line = "  - [dim]database skipped (DATABASE_URL not set)[/dim]\n"
    if config.database.url:
        from comprawatch.persistence.db import init_db

        init_db()
        database_line = "  - [cyan]releases[/cyan], [cyan]ingestion_runs[/cyan] tables\n"

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - CompraWatch initialized[/bold green]\n\n"
        "Created:\n"
        + ("  - [cyan]configs/app.yaml[/cyan] - Application configuration\n" if created_config else "")
        + "  - [cyan]data/[/cyan], [cyan]logs/[/cyan]\n"
        + database_line
        + "\nNext steps:\n"
        "  1. Set [yellow]DATABASE_URL[/yellow] (e.g. in .env)\n"
        "  2. Try discovery: [yellow]comprawatch ingest discover 2025-01[/yellow]\n"
        "  3. Run the scheduler: [yellow]comprawatch serve[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    default_config = """\
# CompraWatch configuration
# DATABASE_URL and CRON_SERVER_PORT override the values below.

data_dir: data

database:
  url: ${DATABASE_URL:-}

feed:
  base_url: https://www.comprasestatales.gub.uy/ocds/rss

ingestion:
  start_period: "2025-01"

scheduler:
  enabled: true
  time_of_day: "00:00"
  timezone: America/Montevideo

server:
  port: ${CRON_SERVER_PORT:-3002}

logging:
  level: INFO
  file: logs/comprawatch.log
"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config, encoding="utf-8")


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of runs to show"),
) -> None:
    """Show release totals and recent ingestion runs."""
    from rich.table import Table

    from comprawatch.persistence.db import get_session
    from comprawatch.persistence.repo import ReleaseRepository, RunRepository

    from .runtime import bootstrap

    bootstrap()

    console.print()
    console.print("[bold]CompraWatch Status[/bold]")
    console.print()

    with get_session() as session:
        total = ReleaseRepository(session).count()
        runs = RunRepository(session).get_recent(limit)

        console.print(f"Stored releases: [bold]{total}[/bold]")
        console.print()

        if not runs:
            console.print("[dim]No ingestion runs yet. Start one with:[/dim] comprawatch ingest run")
            return

        table = Table(title="Recent Runs", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right")
        table.add_column("Type", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Started")
        table.add_column("Duration", justify="right")
        table.add_column("Inserted", justify="right")
        table.add_column("Updated", justify="right")
        table.add_column("Failed", justify="right")

        for run in runs:
            style = {"COMPLETED": "green", "FAILED": "red"}.get(run.status, "yellow")
            duration = run.duration_seconds
            table.add_row(
                str(run.id),
                run.run_type + (" (dry)" if run.dry_run else ""),
                f"[{style}]{run.status}[/{style}]",
                run.started_at.strftime("%Y-%m-%d %H:%M"),
                f"{duration:.0f}s" if duration is not None else "-",
                str(run.inserted),
                str(run.updated),
                str((run.fetch_failed or 0) + (run.write_failed or 0)),
            )

        console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
