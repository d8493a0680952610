"""
Scheduler server command.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ..runtime import bootstrap

console = Console()


def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (default from config / CRON_SERVER_PORT)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to app.yaml"),
) -> None:
    """Run the daily ingestion scheduler with its HTTP control surface."""
    import uvicorn

    from comprawatch.api.app import create_app
    from comprawatch.core.orchestrator.runner import IngestionRunner
    from comprawatch.core.scheduler.health import HealthChecker
    from comprawatch.core.scheduler.recovery import StoreRecovery
    from comprawatch.core.scheduler.service import IngestionScheduler
    from comprawatch.persistence.db import init_db

    config = bootstrap(config_path)
    init_db()

    recovery = StoreRecovery(config.recovery)
    scheduler = IngestionScheduler(
        IngestionRunner(config),
        config=config.scheduler,
        recovery=recovery,
    )
    health_checker = HealthChecker(scheduler.status, recovery=recovery)
    app = create_app(
        scheduler,
        health_checker,
        recovery=recovery,
        start_schedule=config.scheduler.enabled,
    )

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"[bold]CompraWatch scheduler[/bold] listening on [cyan]{bind_host}:{bind_port}[/cyan]")
    if config.scheduler.enabled:
        console.print(f"Next run: [green]{scheduler.next_run().isoformat()}[/green]")
    else:
        console.print("[yellow]Schedule disabled - runs only via POST /cron/trigger[/yellow]")

    uvicorn.run(app, host=bind_host, port=bind_port, log_config=None)
