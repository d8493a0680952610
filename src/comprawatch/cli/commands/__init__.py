"""CLI command modules."""

from . import amounts, db, ingest, serve

__all__ = [
    "amounts",
    "db",
    "ingest",
    "serve",
]
