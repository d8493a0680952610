"""
Store recovery: restart the database service and reconnect.

The stop and start commands are configured as argument lists and run with
``asyncio.create_subprocess_exec`` (no shell).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ...persistence import db
from ..config.models import RecoveryConfig
from ..logging import get_logger

logger = get_logger("scheduler.recovery")


class RecoveryError(Exception):
    """A recovery step failed."""


@dataclass
class RecoveryResult:
    """Outcome of a restart attempt."""

    attempted: bool = False
    succeeded: bool = False
    error: str | None = None
    in_progress: bool = False
    steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "error": self.error,
            "in_progress": self.in_progress,
            "steps": list(self.steps),
        }


class StoreRecovery:
    """Restart the store service and re-establish the connection pool."""

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        reconnect: Callable[[], bool] = db.reconnect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or RecoveryConfig()
        self._reconnect = reconnect
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def _run_command(self, command: list[str]) -> None:
        """Run one command, raising RecoveryError on failure or timeout."""
        if not command:
            return
        label = " ".join(command)
        logger.info(f"Running: {label}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RecoveryError(f"Cannot run '{label}': {e}") from e

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.command_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise RecoveryError(f"'{label}' timed out after {self.config.command_timeout_seconds}s") from e

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise RecoveryError(f"'{label}' exited with {process.returncode}: {detail}")

    async def restart(self) -> RecoveryResult:
        """Stop the store, start it again and reconnect. Never raises."""
        result = RecoveryResult()

        if not self.config.enabled:
            result.error = "Store recovery is disabled"
            logger.warning(result.error)
            return result

        if self.in_progress:
            result.error = "A restart is already in progress"
            result.in_progress = True
            return result

        async with self._lock:
            result.attempted = True
            logger.warning("Attempting to restart the store")
            try:
                # A failed stop (service already down) does not block the start
                try:
                    await self._run_command(self.config.stop_command)
                    result.steps.append("stopped")
                except RecoveryError as e:
                    result.steps.append("stop-failed")
                    logger.warning(f"Stop failed, continuing with restart: {e}")
                await self._sleep(self.config.stop_wait_seconds)

                await self._run_command(self.config.start_command)
                result.steps.append("started")
                await self._sleep(self.config.ready_wait_seconds)

                if not self._reconnect():
                    raise RecoveryError("Store still unreachable after restart")
                result.steps.append("reconnected")
                result.succeeded = True
                logger.info("Store restarted and reconnected")
            except RecoveryError as e:
                result.error = str(e)
                logger.error(f"Store restart failed: {e}")

        return result

    async def ensure_available(self, ping: Callable[[], bool] = db.ping_database) -> RecoveryResult | None:
        """Ping the store; restart it if unreachable.

        Returns:
            None when the store answered, else the restart result
        """
        if await asyncio.to_thread(ping):
            return None
        logger.warning("Store is unreachable")
        return await self.restart()
