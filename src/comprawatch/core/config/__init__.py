"""Configuration loading and validation."""

from .models import (
    # Enums
    JobState,
    RunType,
    RunStatus,
    HealthState,
    # Config models
    AppConfig,
    DatabaseConfig,
    FeedConfig,
    RatesConfig,
    IngestionConfig,
    SchedulerConfig,
    RecoveryConfig,
    ServerConfig,
    LoggingConfig,
)
from .loader import ConfigError, load_app_config, require_database_url

__all__ = [
    # Enums
    "JobState",
    "RunType",
    "RunStatus",
    "HealthState",
    # Config models
    "AppConfig",
    "DatabaseConfig",
    "FeedConfig",
    "RatesConfig",
    "IngestionConfig",
    "SchedulerConfig",
    "RecoveryConfig",
    "ServerConfig",
    "LoggingConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "require_database_url",
]
