"""
Database management commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..runtime import bootstrap

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(
        False,
        "--drop",
        help="Drop existing tables before creating",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to app.yaml"),
) -> None:
    """Initialize the database schema.

    Creates all tables. Use --drop to reset the database.
    """
    from comprawatch.persistence.db import drop_db, init_db

    bootstrap(config_path)

    if drop_existing:
        if not typer.confirm("This will DELETE ALL DATA. Continue?", default=False):
            raise typer.Abort()

        console.print("[yellow]Dropping existing tables...[/yellow]")
        drop_db()

    console.print("Creating database schema...")
    init_db()

    console.print("[green]OK[/green] Database initialized")


@app.command("migrate")
def run_migrations(
    revision: str = typer.Option(
        "head",
        "--revision",
        "-r",
        help="Target revision (default: head)",
    ),
) -> None:
    """Run database migrations."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config("alembic.ini")

    console.print(f"Running migrations to: {revision}")

    try:
        command.upgrade(alembic_cfg, revision)
        console.print("[green]OK[/green] Migrations complete")
    except Exception as e:
        err_console.print(f"[red]Migration failed:[/red] {e}")
        raise typer.Exit(1)


@app.command("current")
def show_current() -> None:
    """Show current database revision."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config("alembic.ini")

    console.print("[bold]Current database revision:[/bold]")
    command.current(alembic_cfg, verbose=True)


@app.command("stats")
def show_stats(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to app.yaml"),
) -> None:
    """Show release counts per period and amount version."""
    from comprawatch.persistence.db import get_session
    from comprawatch.persistence.repo import ReleaseRepository

    bootstrap(config_path)

    with get_session() as session:
        repo = ReleaseRepository(session)
        total = repo.count()
        by_period = repo.count_by_period()
        by_version = repo.count_by_amount_version()

    console.print(f"[bold]Total releases:[/bold] {total}")
    console.print()

    if by_period:
        table = Table(title="Releases by Period", show_header=True, header_style="bold magenta")
        table.add_column("Period", style="cyan")
        table.add_column("Count", justify="right")
        for period, count in by_period.items():
            table.add_row(period, str(count))
        console.print(table)

    if by_version:
        table = Table(title="Releases by Amount Version", show_header=True, header_style="bold magenta")
        table.add_column("Version", style="cyan")
        table.add_column("Count", justify="right")
        for version, count in sorted(by_version.items(), key=lambda kv: (kv[0] is None, kv[0] or 0)):
            table.add_row("none" if version is None else str(version), str(count))
        console.print(table)
