"""
Currency rate table provider.

Fetches the two rate sources used by amount calculation:

- the general multi-currency table (``{success, base, rates, last_update}``,
  each rate being ``{from, to}`` relative to the table's base)
- the indexed-unit (Unidad Indexada) rate (``{code: "UI", buy, date}``)

Each source fails independently. A failure is logged and leaves its part of
the snapshot empty so the amount engine falls back to the static table.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import orjson

from ..logging import get_logger
from ..normalize.parsing import positive_number

logger = get_logger("rates")


class RateSourceError(Exception):
    """A rate source returned an unusable response."""


@dataclass(frozen=True)
class Rate:
    """One entry of the general rate table."""

    from_: float
    to: float | None = None


@dataclass
class RateTableSnapshot:
    """Rates fetched once per run. Never persisted."""

    base_currency: str = "UYU"
    rates: dict[str, Rate] = field(default_factory=dict)
    last_update: str | None = None
    special_unit_rate: float | None = None
    special_unit_date: str | None = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_live_rates(self) -> bool:
        return bool(self.rates)

    def rate_from(self, currency: str) -> float | None:
        """Positive ``from`` value for a currency, if the table has one."""
        rate = self.rates.get(currency)
        if rate is None:
            return None
        return positive_number(rate.from_)

    @classmethod
    def empty(cls, base_currency: str = "UYU", fetched_at: datetime | None = None) -> "RateTableSnapshot":
        """Snapshot with no live data; every conversion uses the fallback table."""
        snapshot = cls(base_currency=base_currency)
        if fetched_at is not None:
            snapshot.fetched_at = fetched_at
        return snapshot


# =============================================================================
# Response parsing
# =============================================================================


def parse_rate_table(payload: Any) -> tuple[dict[str, Rate], str | None]:
    """Parse the general rate endpoint payload.

    Raises:
        RateSourceError: If the payload is not a successful rate table
    """
    if not isinstance(payload, dict) or not payload.get("success"):
        raise RateSourceError("Currency API returned unsuccessful response")

    raw_rates = payload.get("rates")
    if not isinstance(raw_rates, dict):
        raise RateSourceError("Currency API response has no rates")

    rates: dict[str, Rate] = {}
    for code, entry in raw_rates.items():
        if not isinstance(entry, dict):
            continue
        from_value = positive_number(entry.get("from"))
        if from_value is None:
            continue
        to_value = entry.get("to")
        rates[str(code).upper()] = Rate(
            from_=from_value,
            to=float(to_value) if isinstance(to_value, (int, float)) and not isinstance(to_value, bool) else None,
        )

    last_update = payload.get("last_update")
    return rates, str(last_update) if last_update is not None else None


def parse_special_unit(payload: Any, code: str = "UI") -> tuple[float, str | None]:
    """Parse the indexed-unit endpoint payload.

    Raises:
        RateSourceError: If the payload is not a valid indexed-unit quote
    """
    if not isinstance(payload, dict) or payload.get("code") != code:
        raise RateSourceError("Invalid indexed-unit API response format")
    buy = positive_number(payload.get("buy"))
    if buy is None:
        raise RateSourceError("Indexed-unit API response has no buy rate")
    date_value = payload.get("date")
    return buy, str(date_value) if date_value is not None else None


# =============================================================================
# Provider
# =============================================================================


class RateTableProvider:
    """Fetch a RateTableSnapshot from the two rate sources."""

    def __init__(
        self,
        rates_url: str = "https://trustpilot.digitalshopuy.com/currency/all",
        special_unit_url: str = "https://api.cambio-uruguay.com/exchange/bcu/UI",
        base_currency: str = "UYU",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rates_url = rates_url
        self.special_unit_url = special_unit_url
        self.base_currency = base_currency
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, rates_config: Any, **kwargs: Any) -> "RateTableProvider":
        return cls(
            rates_url=rates_config.rates_url,
            special_unit_url=rates_config.special_unit_url,
            base_currency=rates_config.base_currency,
            timeout=rates_config.timeout_seconds,
            **kwargs,
        )

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> Any:
        response = await client.get(url)
        response.raise_for_status()
        return orjson.loads(response.content)

    async def _fetch_rates(self, client: httpx.AsyncClient) -> tuple[dict[str, Rate], str | None]:
        try:
            rates, last_update = parse_rate_table(await self._get_json(client, self.rates_url))
        except Exception as e:
            logger.error(f"Error fetching currency rates: {e}. Will use fallback rates")
            return {}, None

        uyu = rates.get(self.base_currency)
        logger.info(
            f"Fetched exchange rates ({len(rates)} currencies), "
            f"{self.base_currency} leg: {uyu.from_ if uyu else 'N/A'}"
        )
        return rates, last_update

    async def _fetch_special_unit(self, client: httpx.AsyncClient) -> tuple[float | None, str | None]:
        try:
            rate, rate_date = parse_special_unit(await self._get_json(client, self.special_unit_url))
        except Exception as e:
            logger.error(f"Error fetching indexed-unit rate: {e}. Will use fallback rate")
            return None, None

        logger.info(f"Fetched indexed-unit rate: 1 UI = {rate} {self.base_currency} ({rate_date})")
        return rate, rate_date

    async def fetch(self) -> RateTableSnapshot:
        """Fetch both sources concurrently. Never raises."""
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            (rates, last_update), (special, special_date) = await asyncio.gather(
                self._fetch_rates(client),
                self._fetch_special_unit(client),
            )

        return RateTableSnapshot(
            base_currency=self.base_currency,
            rates=rates,
            last_update=last_update,
            special_unit_rate=special,
            special_unit_date=special_date,
        )
