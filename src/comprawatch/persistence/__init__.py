"""Database persistence layer."""

from .db import (
    StoreUnavailableError,
    dispose_engines,
    get_engine,
    get_session,
    init_db,
    ping_database,
    reconnect,
)
from .models import Base, IngestionRun, Release
from .repo import ReleaseRepository, RunRepository, StoredReleaseState
from .writer import ReleaseWriter, UpsertResult

__all__ = [
    "StoreUnavailableError",
    "dispose_engines",
    "get_engine",
    "get_session",
    "init_db",
    "ping_database",
    "reconnect",
    "Base",
    "IngestionRun",
    "Release",
    "ReleaseRepository",
    "RunRepository",
    "StoredReleaseState",
    "ReleaseWriter",
    "UpsertResult",
]
