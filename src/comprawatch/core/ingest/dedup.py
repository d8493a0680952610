"""
Deduplication of discovered releases against the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Session

from ...persistence.repo import ReleaseRepository
from ..feed.discovery import ReleaseDescriptor
from ..logging import get_logger

logger = get_logger("ingest.dedup")


@dataclass
class DedupResult:
    """Descriptors split into new and already-stored ids."""

    new: list[ReleaseDescriptor] = field(default_factory=list)
    existing: list[ReleaseDescriptor] = field(default_factory=list)
    duplicates: int = 0

    @property
    def total(self) -> int:
        return len(self.new) + len(self.existing) + self.duplicates


class Deduplicator:
    """Filter descriptors down to ids not yet stored."""

    def __init__(self, session: Session):
        self.repo = ReleaseRepository(session)

    def diff(self, descriptors: Iterable[ReleaseDescriptor]) -> DedupResult:
        """Split descriptors by whether their id is already stored.

        Uses exactly one lookup query for the whole set. Repeated ids keep
        their first occurrence; later copies are only counted.

        Args:
            descriptors: Descriptors in feed order

        Returns:
            DedupResult preserving input order within each list
        """
        result = DedupResult()
        unique: dict[str, ReleaseDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in unique:
                result.duplicates += 1
                continue
            unique[descriptor.id] = descriptor

        stored = self.repo.existing_ids(unique)
        for release_id, descriptor in unique.items():
            if release_id in stored:
                result.existing.append(descriptor)
            else:
                result.new.append(descriptor)

        logger.info(
            f"Found {len(result.existing)} existing releases, "
            f"{len(result.new)} new releases to process"
            + (f", {result.duplicates} repeated ids" if result.duplicates else "")
        )
        return result
