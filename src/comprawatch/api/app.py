"""FastAPI application factory.

The scheduler, health checker and recovery are passed in explicitly; the app
holds no global state of its own.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler import AsyncScheduler
from fastapi import FastAPI, HTTPException, status
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config.models import HealthState, RunType
from ..core.logging import get_logger
from ..core.scheduler.health import HealthChecker
from ..core.scheduler.recovery import StoreRecovery
from ..core.scheduler.service import IngestionScheduler
from ..core.scheduler.status import JobAlreadyRunning

logger = get_logger("api")


def create_app(
    scheduler: IngestionScheduler,
    health_checker: HealthChecker,
    recovery: StoreRecovery | None = None,
    start_schedule: bool = False,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        scheduler: Ingestion scheduler owning the job status
        health_checker: Health checker used by ``/health``
        recovery: Store recovery used by ``/admin/restart-store``
        start_schedule: Register the cron schedule and run APScheduler for the
            lifetime of the app

    Returns:
        Configured FastAPI app
    """
    recovery = recovery or health_checker.recovery

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API starting")
        if start_schedule:
            async with AsyncScheduler() as aps:
                await scheduler.start(aps)
                await aps.start_in_background()
                yield
        else:
            yield
        logger.info("API stopping")

    app = FastAPI(
        title="CompraWatch",
        description="Scheduler control surface for procurement release ingestion",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.scheduler = scheduler
    app.state.health_checker = health_checker
    app.state.recovery = recovery

    @app.get("/health", tags=["Health"])
    async def health() -> JSONResponse:
        report = await health_checker.check()
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if report.status == HealthState.UNHEALTHY
            else status.HTTP_200_OK
        )
        return JSONResponse(report.to_dict(), status_code=code)

    @app.get("/cron/status", tags=["Scheduler"])
    async def cron_status() -> dict[str, Any]:
        return scheduler.status().to_dict()

    @app.post("/cron/trigger", status_code=status.HTTP_202_ACCEPTED, tags=["Scheduler"])
    async def cron_trigger() -> dict[str, Any]:
        try:
            scheduler.trigger(RunType.MANUAL)
        except JobAlreadyRunning as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        logger.info("Manual ingestion triggered")
        return {"message": "Ingestion started", "status": scheduler.status().to_dict()}

    @app.post("/admin/restart-store", tags=["Admin"])
    async def restart_store() -> JSONResponse:
        result = await recovery.restart()
        if result.succeeded:
            code = status.HTTP_200_OK
        elif result.in_progress:
            code = status.HTTP_409_CONFLICT
        else:
            code = status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(result.to_dict(), status_code=code)

    return app
