"""
Pydantic configuration models for CompraWatch.

These models provide type-safe configuration with validation for:
- Database connection
- Feed and document fetching
- Currency rate sources and the static fallback table
- Ingestion batching and politeness
- Daily scheduler, store recovery and the status server
"""

from __future__ import annotations

from datetime import time
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class JobState(str, Enum):
    """Lifecycle states of the ingestion job."""

    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


class RunType(str, Enum):
    """What started an ingestion run."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"
    CLI = "cli"


class RunStatus(str, Enum):
    """Persisted status of an ingestion run."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class HealthState(str, Enum):
    """Overall health reported by the health check."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str | None = Field(
        default=None,
        description="SQLAlchemy database URL (required, usually from DATABASE_URL)",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Connection pool size",
    )


# =============================================================================
# Feed Configuration
# =============================================================================


class FeedConfig(BaseModel):
    """Release feed and document fetching settings."""

    base_url: str = Field(
        default="https://www.comprasestatales.gub.uy/ocds/rss",
        description="Base URL of the period index feed",
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; CompraWatchBot/1.0)",
        description="User agent for feed and document requests",
    )
    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per request on transient failure",
    )
    retry_min_wait: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum backoff between attempts in seconds",
    )
    retry_max_wait: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum backoff between attempts in seconds",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff multiplier for retries",
    )


# =============================================================================
# Currency Rate Configuration
# =============================================================================


def _default_fallback_rates() -> dict[str, float]:
    return {
        "USD": 40.0,
        "EUR": 44.0,
        "ARS": 0.045,
        "BRL": 8.0,
        "UUYI": 6.36,
        "UYI": 6.36,
        "UI": 6.36,
    }


class RatesConfig(BaseModel):
    """Currency conversion settings."""

    base_currency: str = Field(
        default="UYU",
        description="Currency all summaries are normalized into",
    )
    rates_url: str = Field(
        default="https://trustpilot.digitalshopuy.com/currency/all",
        description="General multi-currency rate endpoint",
    )
    special_unit_url: str = Field(
        default="https://api.cambio-uruguay.com/exchange/bcu/UI",
        description="Indexed-unit (Unidad Indexada) rate endpoint",
    )
    special_unit_codes: list[str] = Field(
        default_factory=lambda: ["UYI", "UI"],
        description="Currency codes converted with the indexed-unit rate",
    )
    identity_currencies: list[str] = Field(
        default_factory=lambda: ["UYU", "UUYI"],
        description="Currency codes counted 1:1 as base currency",
    )
    fallback_rates: dict[str, float] = Field(
        default_factory=_default_fallback_rates,
        description="Static units-of-base per unit of currency, used when live rates are missing",
    )
    timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=120.0,
        description="Rate request timeout in seconds",
    )

    @field_validator("fallback_rates")
    @classmethod
    def rates_positive(cls, v: dict[str, float]) -> dict[str, float]:
        """Fallback rates must be positive."""
        for code, rate in v.items():
            if rate <= 0:
                raise ValueError(f"fallback rate for {code} must be > 0")
        return {code.upper(): rate for code, rate in v.items()}


# =============================================================================
# Ingestion Configuration
# =============================================================================


class IngestionConfig(BaseModel):
    """Batching, concurrency and politeness for the ingestion cycle."""

    start_period: str = Field(
        default="2025-01",
        description="First period (YYYY-MM) covered by a full cycle",
    )
    batch_size: int = Field(
        default=200,
        ge=1,
        le=5000,
        description="Descriptors fetched and persisted per batch",
    )
    concurrency: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum document fetches in flight",
    )
    write_batch_size: int = Field(
        default=500,
        ge=1,
        le=10000,
        description="Rows per bulk upsert statement",
    )
    group_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between concurrency groups",
    )
    batch_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Pause between fetch batches",
    )
    period_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Pause between periods",
    )
    scheduled_lookback_months: int = Field(
        default=1,
        ge=0,
        le=24,
        description="Months before the current one re-read by a scheduled cycle",
    )

    @field_validator("start_period")
    @classmethod
    def valid_period(cls, v: str) -> str:
        """Ensure start period looks like YYYY-MM."""
        parts = v.split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("start_period must be formatted YYYY-MM")
        if not 1 <= int(parts[1]) <= 12:
            raise ValueError("start_period month must be 1-12")
        return v


# =============================================================================
# Scheduler / Recovery / Server Configuration
# =============================================================================


class SchedulerConfig(BaseModel):
    """Daily scheduler settings."""

    enabled: bool = Field(
        default=True,
        description="Master scheduler enable/disable",
    )
    time_of_day: time = Field(
        default=time(0, 0),
        description="Local time of the daily run",
    )
    timezone: str = Field(
        default="America/Montevideo",
        description="Timezone of time_of_day",
    )


class RecoveryConfig(BaseModel):
    """Store self-recovery settings."""

    enabled: bool = Field(
        default=True,
        description="Attempt to restart the store service when it is unreachable",
    )
    stop_command: list[str] = Field(
        default_factory=lambda: ["sudo", "systemctl", "stop", "postgresql"],
        description="Command used to stop the store service",
    )
    start_command: list[str] = Field(
        default_factory=lambda: ["sudo", "systemctl", "start", "postgresql"],
        description="Command used to start the store service",
    )
    command_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        description="Timeout per service command",
    )
    stop_wait_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Wait after stopping before starting",
    )
    ready_wait_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Wait after starting before reconnecting",
    )


class ServerConfig(BaseModel):
    """Status/health HTTP server settings."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3002, ge=1, le=65535)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/comprawatch.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Field(
        default=Path("data"),
        description="Data storage directory",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    rates: RatesConfig = Field(default_factory=RatesConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
