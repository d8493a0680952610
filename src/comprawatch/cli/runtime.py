"""
Shared start-up steps for CLI commands: config, logging, database.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from ..core.config.loader import ConfigError, load_app_config, require_database_url
from ..core.config.models import AppConfig
from ..core.logging import setup_logging

err_console = Console(stderr=True)


def load_config_or_exit(config_path: Path | None = None) -> AppConfig:
    """Load AppConfig, printing the error and exiting with 1 on failure."""
    try:
        return load_app_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)


def bootstrap(
    config_path: Path | None = None,
    require_database: bool = True,
    rich_console: bool | None = None,
) -> AppConfig:
    """Load config, set up logging and bind the database engine.

    Args:
        config_path: Path to app.yaml
        require_database: Exit with 1 when no database URL is configured
        rich_console: Override the configured console handler

    Returns:
        Loaded AppConfig
    """
    from ..persistence.db import get_engine

    config = load_config_or_exit(config_path)
    config.ensure_directories()

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console if rich_console is None else rich_console,
    )

    if require_database or config.database.url:
        try:
            url = require_database_url(config)
        except ConfigError as e:
            err_console.print(f"[red]{e}[/red]")
            if e.details:
                err_console.print(f"[dim]{e.details}[/dim]")
            raise typer.Exit(1)
        get_engine(url, echo=config.database.echo, pool_size=config.database.pool_size)

    return config
