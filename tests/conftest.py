"""
Shared pytest fixtures for CompraWatch tests.

Provides:
- A temporary SQLite database bound to the global engine
- An AppConfig with politeness delays and retry waits disabled
- Builders for OCDS release packages and RSS index documents
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterator

import pytest

from comprawatch.core.config.models import AppConfig
from comprawatch.core.rates.provider import RateTableSnapshot
from comprawatch.persistence.db import dispose_engines, get_session, init_db

FEED_BASE = "https://feed.test/ocds/rss"
DOCS_BASE = "https://docs.test/ocds/release"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'comprawatch-test.db'}"


@pytest.fixture
def db(database_url) -> Iterator[str]:
    """Fresh schema on a temporary SQLite file."""
    dispose_engines()
    init_db(database_url)
    yield database_url
    dispose_engines()


@pytest.fixture
def session(db):
    with get_session() as s:
        yield s


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def app_config(database_url) -> AppConfig:
    return AppConfig.model_validate(
        {
            "database": {"url": database_url},
            "feed": {"base_url": FEED_BASE, "retry_min_wait": 0, "retry_max_wait": 0},
            "rates": {
                "rates_url": "https://rates.test/currency/all",
                "special_unit_url": "https://rates.test/exchange/bcu/UI",
            },
            "ingestion": {
                "start_period": "2025-01",
                "group_delay_seconds": 0,
                "batch_delay_seconds": 0,
                "period_delay_seconds": 0,
            },
            "recovery": {"enabled": False},
            "logging": {"file": None, "rich_console": False},
        }
    )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def empty_snapshot(fixed_now) -> RateTableSnapshot:
    """No live rates: every conversion falls back to the static table."""
    return RateTableSnapshot.empty(fetched_at=fixed_now)


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def instant_sleep() -> Callable[[float], Any]:
    return no_sleep


# =============================================================================
# Document builders
# =============================================================================


def build_award(amount: Any = 100, currency: str | None = "USD", quantity: Any = 2, **fields: Any) -> dict[str, Any]:
    value: dict[str, Any] = {"amount": amount}
    if currency is not None:
        value["currency"] = currency
    return {
        "id": fields.pop("id", "award-1"),
        "date": fields.pop("date", "2025-03-10T12:00:00-03:00"),
        "items": [{"id": "1", "quantity": quantity, "unit": {"value": value}}],
        **fields,
    }


def build_package(
    release_id: str,
    awards: list[dict[str, Any]] | None = None,
    parties: list[dict[str, Any]] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    release = {
        "id": release_id,
        "ocid": f"ocds-70d2nz-{release_id}",
        "date": "2025-03-10T12:00:00Z",
        "tag": ["award"],
        "initiationType": "tender",
        "parties": parties
        if parties is not None
        else [
            {"id": "B-1", "name": "Ministerio de Salud", "roles": ["buyer"]},
            {"id": "S-1", "name": "Proveedor SA", "roles": ["supplier", "tenderer"]},
        ],
        "awards": awards if awards is not None else [build_award()],
        **fields,
    }
    return {
        "uri": f"{DOCS_BASE}/{release_id}",
        "publishedDate": "2025-03-10T12:00:00Z",
        "releases": [release],
    }


def build_feed(release_ids: list[str]) -> str:
    items = "".join(
        f"""
        <item>
          <title>Adjudicación {rid}</title>
          <link>{DOCS_BASE}/{rid}</link>
          <description>Release {rid}</description>
          <pubDate>Mon, 10 Mar 2025 12:00:00 -0300</pubDate>
          <guid>{rid}</guid>
        </item>"""
        for rid in release_ids
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Compras Estatales</title>{items}
  </channel>
</rss>"""


@pytest.fixture
def make_package() -> Callable[..., dict[str, Any]]:
    return build_package


@pytest.fixture
def make_award() -> Callable[..., dict[str, Any]]:
    return build_award


@pytest.fixture
def make_feed() -> Callable[[list[str]], str]:
    return build_feed
