"""
Release discovery from the per-period RSS index.

The portal publishes one RSS document per month at
``{base_url}/{year}/{MM}``. Each entry links to a full OCDS release package.
Discovery turns a period into an ordered list of ReleaseDescriptors.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator

from lxml import etree

from ..backends.base import NotFoundError
from ..backends.http_backend import HttpBackend
from ..logging import get_logger
from ..normalize.parsing import parse_date
from .ids import extract_release_id

logger = get_logger("feed.discovery")


MIN_YEAR = 2000


class FeedParseError(ValueError):
    """The period index could not be parsed as RSS."""


# =============================================================================
# Period
# =============================================================================


@dataclass(frozen=True, order=True)
class Period:
    """A year+month, or a whole year when ``month`` is None."""

    year: int
    month: int | None = None

    def __post_init__(self) -> None:
        max_year = date.today().year + 1
        if not MIN_YEAR <= self.year <= max_year:
            raise ValueError(
                f"Invalid year: {self.year}. Year must be between {MIN_YEAR} and {max_year}"
            )
        if self.month is not None and not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month}. Month must be between 1 and 12")

    @classmethod
    def parse(cls, value: str) -> "Period":
        """Parse ``YYYY-MM``, ``YYYY/MM`` or ``YYYY``."""
        text = value.strip().replace("/", "-")
        parts = text.split("-")
        try:
            if len(parts) == 1:
                return cls(int(parts[0]))
            if len(parts) == 2:
                return cls(int(parts[0]), int(parts[1]))
        except ValueError as e:
            raise ValueError(f"Invalid period '{value}': {e}") from e
        raise ValueError(f"Invalid period '{value}': expected YYYY-MM or YYYY")

    @classmethod
    def current(cls) -> "Period":
        today = date.today()
        return cls(today.year, today.month)

    def months(self) -> list["Period"]:
        """Expand to month periods (a month period expands to itself)."""
        if self.month is not None:
            return [self]
        return [Period(self.year, m) for m in range(1, 13)]

    def __str__(self) -> str:
        if self.month is None:
            return f"{self.year}"
        return f"{self.year}-{self.month:02d}"


def periods_between(start: Period, end: Period) -> list[Period]:
    """Inclusive list of month periods from start to end.

    Year-only bounds are widened: a year start means January, a year end
    means December.
    """
    start_month = start.month or 1
    end_month = end.month or 12
    current = (start.year, start_month)
    stop = (end.year, end_month)

    periods: list[Period] = []
    while current <= stop:
        periods.append(Period(*current))
        year, month = current
        current = (year + 1, 1) if month == 12 else (year, month + 1)
    return periods


# =============================================================================
# Descriptor
# =============================================================================


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Lightweight reference to a release before its document is fetched."""

    id: str
    source_link: str
    title: str = ""
    description: str = ""
    publish_date: datetime | None = None
    guid: str | None = None
    period: str | None = None


# =============================================================================
# RSS parsing
# =============================================================================


def _localname(element: etree._Element) -> str | None:
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def _child_text(item: etree._Element, name: str) -> str:
    for child in item:
        if _localname(child) == name:
            return (child.text or "").strip()
    return ""


def _iter_items(root: etree._Element) -> Iterator[etree._Element]:
    for element in root.iter():
        if _localname(element) == "item":
            yield element


def parse_feed(content: str | bytes, period: Period | None = None) -> list[ReleaseDescriptor]:
    """Parse an RSS index document into descriptors.

    Entries with neither title nor link, or from which no id can be
    extracted, are dropped with a warning.

    Raises:
        FeedParseError: If the document is not an RSS feed
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)

    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as e:
        raise FeedParseError(f"XML parsing error: {e}") from e

    if root is None or _localname(root) != "rss":
        raise FeedParseError("Invalid RSS feed structure - missing rss/channel elements")

    descriptors: list[ReleaseDescriptor] = []
    period_label = str(period) if period else None

    for item in _iter_items(root):
        title = _child_text(item, "title")
        link = _child_text(item, "link")
        description = _child_text(item, "description")
        guid = _child_text(item, "guid") or None

        if not title and not link:
            logger.warning("RSS item missing both title and link, skipping")
            continue

        release_id = extract_release_id(title, link, guid)
        if not release_id:
            logger.warning(f"Could not extract release id from item: {title!r}")
            continue

        descriptors.append(
            ReleaseDescriptor(
                id=release_id,
                source_link=link,
                title=title,
                description=description,
                publish_date=parse_date(_child_text(item, "pubDate")).value,
                guid=guid,
                period=period_label,
            )
        )

    return descriptors


# =============================================================================
# Discovery
# =============================================================================


class FeedDiscovery:
    """Discover releases published for a period."""

    def __init__(
        self,
        backend: HttpBackend,
        base_url: str = "https://www.comprasestatales.gub.uy/ocds/rss",
        month_delay_seconds: float = 1.0,
    ):
        self.backend = backend
        self.base_url = base_url.rstrip("/")
        self.month_delay_seconds = month_delay_seconds

    def feed_url(self, period: Period) -> str:
        if period.month is None:
            raise ValueError("feed_url needs a month period")
        return f"{self.base_url}/{period.year}/{period.month:02d}"

    async def discover_month(self, period: Period) -> list[ReleaseDescriptor]:
        """Discover one month. A 404 means the month is not published yet."""
        url = self.feed_url(period)
        logger.info(f"Fetching release index {url}", extra={"period": str(period), "url": url})

        try:
            content = await self.backend.get_text(url)
        except NotFoundError:
            logger.info(f"No release index for {period} (404)", extra={"period": str(period)})
            return []

        descriptors = parse_feed(content, period)
        logger.info(
            f"Found {len(descriptors)} releases for {period}",
            extra={"period": str(period)},
        )
        return descriptors

    async def discover(self, period: Period) -> list[ReleaseDescriptor]:
        """Discover releases for a month or a whole year, in feed order.

        For a year, each month is fetched in turn; a failing month is logged
        and skipped so the rest of the year is still discovered.
        """
        if period.month is not None:
            return await self.discover_month(period)

        descriptors: list[ReleaseDescriptor] = []
        months = period.months()
        for index, month in enumerate(months):
            try:
                descriptors.extend(await self.discover_month(month))
            except Exception as e:
                logger.warning(f"Failed to fetch releases for {month}: {e}", extra={"period": str(month)})
            if index < len(months) - 1 and self.month_delay_seconds > 0:
                await asyncio.sleep(self.month_delay_seconds)

        logger.info(f"Total releases found for {period}: {len(descriptors)}")
        return descriptors
