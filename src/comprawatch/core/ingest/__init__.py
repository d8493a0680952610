"""Deduplication and batched document fetching."""

from .batch_fetch import BatchFetchOrchestrator, FetchOutcome
from .dedup import DedupResult, Deduplicator

__all__ = [
    "BatchFetchOrchestrator",
    "FetchOutcome",
    "DedupResult",
    "Deduplicator",
]
