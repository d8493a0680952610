"""
Tests for period handling, release id extraction and feed discovery.
"""

from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from comprawatch.core.backends.http_backend import HttpBackend
from comprawatch.core.feed.discovery import (
    FeedDiscovery,
    FeedParseError,
    Period,
    periods_between,
    parse_feed,
)
from comprawatch.core.feed.ids import extract_release_id
from comprawatch.core.fetch.retries import RetryConfig

from .conftest import DOCS_BASE, FEED_BASE, build_feed


# =============================================================================
# Period
# =============================================================================


class TestPeriod:
    """Parsing, validation and expansion of periods."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2025-03", Period(2025, 3)),
            ("2025/3", Period(2025, 3)),
            (" 2024-12 ", Period(2024, 12)),
            ("2024", Period(2024)),
        ],
    )
    def test_parse(self, text, expected):
        assert Period.parse(text) == expected

    @pytest.mark.parametrize("text", ["2025-13", "1999-01", "abc", "2025-01-01", "2025-00"])
    def test_parse_rejects_invalid(self, text):
        with pytest.raises(ValueError):
            Period.parse(text)

    def test_str(self):
        assert str(Period(2025, 3)) == "2025-03"
        assert str(Period(2025)) == "2025"

    def test_year_expands_to_months(self):
        months = Period(2024).months()

        assert len(months) == 12
        assert months[0] == Period(2024, 1)
        assert months[-1] == Period(2024, 12)

    def test_periods_between_crosses_year(self):
        periods = periods_between(Period(2024, 11), Period(2025, 2))

        assert [str(p) for p in periods] == ["2024-11", "2024-12", "2025-01", "2025-02"]

    def test_periods_between_empty_when_reversed(self):
        assert periods_between(Period(2025, 3), Period(2025, 1)) == []

    def test_ordering(self):
        assert Period(2024, 12) < Period(2025, 1)


# =============================================================================
# Release id extraction
# =============================================================================


class TestExtractReleaseId:
    """Ordered matcher chain over title, link and guid."""

    def test_structured_key_wins(self):
        title = "id_compra:123,release_id:adjudicacion-456"
        assert extract_release_id(title, None) == "adjudicacion-456"

    def test_domain_prefix_in_title(self):
        assert extract_release_id("Adjudicación adjudicacion-1219109", None) == "adjudicacion-1219109"

    def test_ocds_id_from_link(self):
        link = "https://example.test/ocds/release/ocds-70d2nz-abc123"
        assert extract_release_id(None, link) == "ocds-70d2nz-abc123"

    def test_title_is_tried_before_link(self):
        release_id = extract_release_id("compra-111111", f"{DOCS_BASE}/adjudicacion-222222")
        assert release_id == "compra-111111"

    def test_numeric_fallback(self):
        assert extract_release_id("Llamado 1234567", None) == "1234567"

    def test_raw_title_when_id_shaped(self):
        assert extract_release_id("ABC_123", None) == "ABC_123"

    def test_guid_is_last_resort(self):
        assert extract_release_id("Hola", None, guid="contrato-9876") == "contrato-9876"

    def test_nothing_recognizable(self):
        assert extract_release_id("Hola", None, None) is None


# =============================================================================
# RSS parsing
# =============================================================================


class TestParseFeed:
    """RSS index documents into descriptors."""

    def test_parses_items_in_order(self):
        descriptors = parse_feed(build_feed(["adjudicacion-1001", "adjudicacion-1002"]), Period(2025, 3))

        assert [d.id for d in descriptors] == ["adjudicacion-1001", "adjudicacion-1002"]
        first = descriptors[0]
        assert first.source_link == f"{DOCS_BASE}/adjudicacion-1001"
        assert first.period == "2025-03"
        assert first.description == "Release adjudicacion-1001"
        assert first.publish_date == datetime(2025, 3, 10, 15, 0)

    def test_items_without_id_are_dropped(self):
        content = """<?xml version="1.0"?>
<rss version="2.0"><channel>
  <item><title>Hola</title></item>
  <item><description>no title, no link</description></item>
  <item><title>adjudicacion-3003</title><link>https://docs.test/x</link></item>
</channel></rss>"""

        descriptors = parse_feed(content)

        assert [d.id for d in descriptors] == ["adjudicacion-3003"]
        assert descriptors[0].period is None

    def test_unparseable_pub_date_is_none(self):
        content = """<rss><channel><item>
  <title>adjudicacion-4004</title><pubDate>???</pubDate>
</item></channel></rss>"""

        assert parse_feed(content)[0].publish_date is None

    def test_rejects_non_rss_root(self):
        with pytest.raises(FeedParseError):
            parse_feed("<feed><entry/></feed>")

    def test_empty_channel(self):
        assert parse_feed("<rss><channel><title>x</title></channel></rss>") == []


# =============================================================================
# Discovery
# =============================================================================


def _backend(handler) -> HttpBackend:
    return HttpBackend(
        retry_config=RetryConfig(max_attempts=2, min_wait=0, max_wait=0, multiplier=1),
        transport=httpx.MockTransport(handler),
    )


class TestFeedDiscovery:
    """Period index fetching."""

    @pytest.fixture
    def backend(self):
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if str(request.url) == f"{FEED_BASE}/2025/03":
                return httpx.Response(200, text=build_feed(["adjudicacion-1001", "adjudicacion-1002"]))
            return httpx.Response(404)

        backend = _backend(handler)
        backend.requested = requested
        return backend

    def test_feed_url(self, backend):
        discovery = FeedDiscovery(backend, base_url=FEED_BASE + "/")

        assert discovery.feed_url(Period(2025, 3)) == f"{FEED_BASE}/2025/03"
        with pytest.raises(ValueError):
            discovery.feed_url(Period(2025))

    async def test_discover_month(self, backend):
        discovery = FeedDiscovery(backend, base_url=FEED_BASE)

        descriptors = await discovery.discover(Period(2025, 3))

        assert [d.id for d in descriptors] == ["adjudicacion-1001", "adjudicacion-1002"]
        await backend.close()

    async def test_missing_month_is_empty(self, backend):
        discovery = FeedDiscovery(backend, base_url=FEED_BASE)

        assert await discovery.discover(Period(2025, 4)) == []
        # 404 is not retried
        assert backend.requested == [f"{FEED_BASE}/2025/04"]
        await backend.close()

    async def test_discover_year(self, backend):
        discovery = FeedDiscovery(backend, base_url=FEED_BASE, month_delay_seconds=0)

        descriptors = await discovery.discover(Period(2025))

        assert len(descriptors) == 2
        assert len(backend.requested) == 12
        await backend.close()

    async def test_year_skips_failing_month(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/2025/01"):
                return httpx.Response(500)
            if request.url.path.endswith("/2025/02"):
                return httpx.Response(200, text=build_feed(["adjudicacion-2002"]))
            return httpx.Response(404)

        backend = _backend(handler)
        discovery = FeedDiscovery(backend, base_url=FEED_BASE, month_delay_seconds=0)

        descriptors = await discovery.discover(Period(2025))

        assert [d.id for d in descriptors] == ["adjudicacion-2002"]
        await backend.close()
