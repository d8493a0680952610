"""
Canonical release model for normalized data.

Provides a clean interface between a validated upstream release and the
``releases`` table.
"""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import orjson

from ..amounts.engine import AmountSummary, has_item_amounts
from .document import OcdsRelease
from .parsing import normalize_whitespace, parse_date

if TYPE_CHECKING:
    from ..feed.discovery import ReleaseDescriptor


SOURCE_FILE_NAME = "web"

# Nested OCDS date fields rewritten to ISO-8601 UTC strings
_PERIOD_KEYS = ("tenderPeriod", "enquiryPeriod", "awardPeriod", "contractPeriod")


@dataclass
class ReleaseCanonical:
    """Normalized release ready for persistence."""

    # Required identifiers
    release_id: str
    ocid: str | None = None

    # Core fields
    date: datetime | None = None
    tag: list[str] = field(default_factory=list)
    initiation_type: str | None = None
    parties: list[dict[str, Any]] = field(default_factory=list)
    buyer: dict[str, Any] | None = None
    supplier: dict[str, Any] | None = None
    tender: dict[str, Any] | None = None
    awards: list[dict[str, Any]] = field(default_factory=list)

    # Derived
    amount: AmountSummary | None = None
    has_item_amounts: bool = False

    # Source metadata
    source_file_name: str = SOURCE_FILE_NAME
    source_year: int | None = None
    source_period: str | None = None
    feed_title: str | None = None
    feed_description: str | None = None
    feed_publish_date: datetime | None = None
    feed_link: str | None = None
    fetched_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Any, amount: AmountSummary | None = None) -> "ReleaseCanonical":
        """Rebuild from a stored ``releases`` row, optionally with a new amount."""
        return cls(
            release_id=record.release_id,
            ocid=record.ocid,
            date=record.date,
            tag=list(record.tag or []),
            initiation_type=record.initiation_type,
            parties=list(record.parties or []),
            buyer=record.buyer,
            supplier=record.supplier,
            tender=record.tender,
            awards=list(record.awards or []),
            amount=amount,
            has_item_amounts=bool(record.has_item_amounts),
            source_file_name=record.source_file_name or SOURCE_FILE_NAME,
            source_year=record.source_year,
            source_period=record.source_period,
            feed_title=record.feed_title,
            feed_description=record.feed_description,
            feed_publish_date=record.feed_publish_date,
            feed_link=record.feed_link,
            fetched_at=record.fetched_at,
        )

    def content(self) -> dict[str, Any]:
        """Fields that describe the release itself, without bookkeeping."""
        return {
            "release_id": self.release_id,
            "ocid": self.ocid,
            "date": self.date.isoformat() if self.date else None,
            "tag": self.tag,
            "initiation_type": self.initiation_type,
            "parties": self.parties,
            "buyer": self.buyer,
            "supplier": self.supplier,
            "tender": self.tender,
            "awards": self.awards,
            "amount": self.amount.content_dict() if self.amount else None,
            "source_year": self.source_year,
            "source_period": self.source_period,
            "feed_title": self.feed_title,
            "feed_description": self.feed_description,
            "feed_link": self.feed_link,
        }

    def compute_fingerprint(self) -> str:
        """Compute a content-based fingerprint for change detection.

        Timestamps (fetch time, amount ``updatedAt``) are excluded so that
        re-ingesting the same document yields the same fingerprint.
        """
        payload = orjson.dumps(self.content(), option=orjson.OPT_SORT_KEYS, default=str)
        return hashlib.sha256(payload).hexdigest()[:32]

    def to_row(self) -> dict[str, Any]:
        """Convert to a ``releases`` row dictionary (without timestamps)."""
        amount = self.amount.to_dict() if self.amount else None
        return {
            "release_id": self.release_id,
            "ocid": self.ocid,
            "date": self.date,
            "tag": self.tag,
            "initiation_type": self.initiation_type,
            "parties": self.parties,
            "buyer": self.buyer,
            "supplier": self.supplier,
            "tender": self.tender,
            "awards": self.awards,
            "amount": amount,
            "amount_version": self.amount.version if self.amount else None,
            "primary_amount": self.amount.primary_amount if self.amount else None,
            "has_item_amounts": self.has_item_amounts,
            "source_file_name": self.source_file_name,
            "source_year": self.source_year,
            "source_period": self.source_period,
            "feed_title": self.feed_title,
            "feed_description": self.feed_description,
            "feed_publish_date": self.feed_publish_date,
            "feed_link": self.feed_link,
            "fetched_at": self.fetched_at,
            "fingerprint": self.compute_fingerprint(),
        }


# =============================================================================
# Date normalization
# =============================================================================


def _iso(value: Any) -> Any:
    """ISO-8601 string for a parseable date, the input unchanged otherwise."""
    if not isinstance(value, str) or not value.strip():
        return value
    parsed = parse_date(value).value
    return parsed.isoformat() if parsed else value


def _normalize_documents(documents: Any) -> None:
    if not isinstance(documents, list):
        return
    for doc in documents:
        if isinstance(doc, dict) and "datePublished" in doc:
            doc["datePublished"] = _iso(doc["datePublished"])


def _normalize_periods(container: dict[str, Any]) -> None:
    for key in _PERIOD_KEYS:
        period = container.get(key)
        if isinstance(period, dict):
            for bound in ("startDate", "endDate"):
                if bound in period:
                    period[bound] = _iso(period[bound])


def normalize_tender_dates(tender: dict[str, Any] | None) -> dict[str, Any] | None:
    """Copy of ``tender`` with its period and document dates normalized."""
    if tender is None:
        return None
    tender = copy.deepcopy(tender)
    _normalize_periods(tender)
    _normalize_documents(tender.get("documents"))
    return tender


def normalize_award_dates(awards: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copy of ``awards`` with award, period and document dates normalized."""
    awards = copy.deepcopy(awards)
    for award in awards:
        if "date" in award:
            award["date"] = _iso(award["date"])
        _normalize_periods(award)
        _normalize_documents(award.get("documents"))
    return awards


# =============================================================================
# Normalization
# =============================================================================


def normalize_release(
    release: OcdsRelease,
    *,
    descriptor: "ReleaseDescriptor | None" = None,
    amount: AmountSummary | None = None,
    fetched_at: datetime | None = None,
    source_year: int | None = None,
) -> ReleaseCanonical:
    """Normalize a validated release to canonical form.

    Buyer and supplier are resolved from the party list by role; a ``buyer``
    party overrides the release's own buyer reference.

    Args:
        release: Validated upstream release
        descriptor: Feed entry the release was discovered under
        amount: Precomputed AmountSummary
        fetched_at: When the document was fetched
        source_year: Year of the feed period

    Returns:
        ReleaseCanonical
    """
    buyer_party = release.party_with_role("buyer")
    supplier_party = release.party_with_role("supplier")

    buyer = buyer_party.model_dump(exclude_none=True) if buyer_party else release.buyer
    supplier = supplier_party.model_dump(exclude_none=True) if supplier_party else None

    period = descriptor.period if descriptor else None
    if source_year is None and period:
        source_year = int(period.split("-")[0])

    return ReleaseCanonical(
        release_id=release.id,
        ocid=release.ocid,
        date=parse_date(release.date).value,
        tag=list(release.tag),
        initiation_type=release.initiation_type,
        parties=release.parties_as_dicts(),
        buyer=buyer,
        supplier=supplier,
        tender=normalize_tender_dates(release.tender),
        awards=normalize_award_dates(release.awards),
        amount=amount,
        has_item_amounts=has_item_amounts(release.awards),
        source_year=source_year,
        source_period=period,
        feed_title=normalize_whitespace(descriptor.title) or None if descriptor else None,
        feed_description=descriptor.description or None if descriptor else None,
        feed_publish_date=descriptor.publish_date if descriptor else None,
        feed_link=descriptor.source_link or None if descriptor else None,
        fetched_at=fetched_at,
    )
