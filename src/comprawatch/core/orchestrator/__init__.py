"""Orchestrator - ingestion cycle coordination."""

from .runner import IngestionError, IngestionRunner, RunStats, default_periods, run_ingestion

__all__ = [
    "IngestionError",
    "IngestionRunner",
    "RunStats",
    "default_periods",
    "run_ingestion",
]
