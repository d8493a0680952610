"""
Amount calculation engine.

Builds the versioned AmountSummary stored on every release record: totals
per original currency, plus a primary amount converted into the base
currency (UYU) using live rates where available and the static fallback
table otherwise.

Conversion rules, in order:

1. identity currencies (UYU, UUYI) are counted 1:1
2. indexed-unit codes (UYI, UI) use the live indexed-unit rate, else fallback
3. a currency present in the live table converts through the table's base:
   ``amount / rates[cur].from * rates[UYU].from`` (USD fallback for the UYU leg)
4. the static fallback table
5. anything else is counted 1:1 and reported in ``unresolvedCurrencies``

``compute`` is pure: the same awards, snapshot and options always give the
same summary. The timestamp comes from the options or the snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from ..logging import get_logger
from ..normalize.parsing import positive_number
from ..rates.provider import RateTableSnapshot

logger = get_logger("amounts")


# Bump when the calculation changes; stored summaries with another version
# are picked up by the maintenance refresh.
AMOUNT_CALCULATION_VERSION = 2

BASE_CURRENCY = "UYU"

# Units of base currency per unit of currency
DEFAULT_FALLBACK_RATES: dict[str, float] = {
    "USD": 40.0,
    "EUR": 44.0,
    "ARS": 0.045,
    "BRL": 8.0,
    "UUYI": 6.36,
    "UYI": 6.36,
    "UI": 6.36,
}

DEFAULT_IDENTITY_CURRENCIES = ("UYU", "UUYI")
DEFAULT_SPECIAL_UNIT_CODES = ("UYI", "UI")

# The live table is quoted against USD, so its base leg falls back to USD.
TABLE_BASE_CURRENCY = "USD"


# =============================================================================
# Data structures
# =============================================================================


@dataclass
class AmountOptions:
    """Per-call options for compute."""

    include_version_info: bool = True
    was_version_update: bool = False
    previous_amount: float | None = None
    computed_at: datetime | None = None


@dataclass
class AmountSummary:
    """Derived, versioned monetary aggregate of a release's awards."""

    total_amounts: dict[str, float]
    total_items: int
    currencies: list[str]
    has_amounts: bool
    primary_amount: float
    primary_currency: str
    original_base_amount: float
    has_converted_amounts: bool
    version: int
    updated_at: datetime
    exchange_rate_date: str | None = None
    special_unit_rate: float | None = None
    was_version_update: bool | None = None
    previous_amount: float | None = None
    unresolved_currencies: list[str] = field(default_factory=list)
    include_version_info: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the stored (camelCase) keys."""
        data: dict[str, Any] = {
            "totalAmounts": dict(self.total_amounts),
            "totalItems": self.total_items,
            "currencies": list(self.currencies),
            "hasAmounts": self.has_amounts,
            "primaryAmount": self.primary_amount,
            "primaryCurrency": self.primary_currency,
            "originalBaseAmount": self.original_base_amount,
            "hasConvertedAmounts": self.has_converted_amounts,
            "version": self.version,
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.include_version_info:
            data["exchangeRateDate"] = self.exchange_rate_date
            data["specialUnitRate"] = self.special_unit_rate
            data["wasVersionUpdate"] = self.was_version_update
            data["previousAmount"] = self.previous_amount
        if self.unresolved_currencies:
            data["unresolvedCurrencies"] = list(self.unresolved_currencies)
        return data

    def content_dict(self) -> dict[str, Any]:
        """The part of the summary that depends only on awards and rates.

        Used for change detection, so bookkeeping fields (timestamps and
        version-update markers) do not make an unchanged record look updated.
        """
        data = self.to_dict()
        for key in ("updatedAt", "exchangeRateDate", "wasVersionUpdate", "previousAmount"):
            data.pop(key, None)
        return data


# =============================================================================
# Conversion
# =============================================================================


class CurrencyConverter:
    """Convert amounts into the base currency for one rate snapshot."""

    def __init__(
        self,
        snapshot: RateTableSnapshot,
        fallback_rates: Mapping[str, float] | None = None,
        base_currency: str = BASE_CURRENCY,
        identity_currencies: Iterable[str] = DEFAULT_IDENTITY_CURRENCIES,
        special_unit_codes: Iterable[str] = DEFAULT_SPECIAL_UNIT_CODES,
    ):
        self.snapshot = snapshot
        self.fallback_rates = dict(DEFAULT_FALLBACK_RATES if fallback_rates is None else fallback_rates)
        self.base_currency = base_currency
        self.identity_currencies = frozenset(identity_currencies) | {base_currency}
        self.special_unit_codes = frozenset(special_unit_codes)

    def _base_leg(self) -> float:
        live = self.snapshot.rate_from(self.base_currency)
        if live is not None:
            return live
        return self.fallback_rates.get(TABLE_BASE_CURRENCY, DEFAULT_FALLBACK_RATES[TABLE_BASE_CURRENCY])

    def to_base(self, amount: float, currency: str) -> tuple[float, bool]:
        """Convert ``amount`` of ``currency`` to the base currency.

        Returns:
            (converted amount, whether a rate was found)
        """
        if currency in self.identity_currencies:
            return amount, True

        if currency in self.special_unit_codes:
            rate = positive_number(self.snapshot.special_unit_rate)
            if rate is None:
                rate = self.fallback_rates.get(currency) or DEFAULT_FALLBACK_RATES["UYI"]
            return amount * rate, True

        live = self.snapshot.rate_from(currency)
        if live is not None:
            return amount / live * self._base_leg(), True

        fallback = positive_number(self.fallback_rates.get(currency))
        if fallback is not None:
            return amount * fallback, True

        return amount, False


# =============================================================================
# Calculation
# =============================================================================


def _get(data: Any, *path: str) -> Any:
    current = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _currency_of(value: Any, default: str) -> str:
    currency = _get(value, "currency")
    if isinstance(currency, str) and currency.strip():
        return currency.strip().upper()
    return default


class AmountCalculator:
    """Compute AmountSummaries with a fixed conversion configuration."""

    def __init__(
        self,
        fallback_rates: Mapping[str, float] | None = None,
        base_currency: str = BASE_CURRENCY,
        identity_currencies: Iterable[str] = DEFAULT_IDENTITY_CURRENCIES,
        special_unit_codes: Iterable[str] = DEFAULT_SPECIAL_UNIT_CODES,
        version: int = AMOUNT_CALCULATION_VERSION,
    ):
        self.fallback_rates = dict(DEFAULT_FALLBACK_RATES if fallback_rates is None else fallback_rates)
        self.base_currency = base_currency
        self.identity_currencies = tuple(identity_currencies)
        self.special_unit_codes = tuple(special_unit_codes)
        self.version = version

    @classmethod
    def from_config(cls, rates_config: Any) -> "AmountCalculator":
        return cls(
            fallback_rates=rates_config.fallback_rates,
            base_currency=rates_config.base_currency,
            identity_currencies=rates_config.identity_currencies,
            special_unit_codes=rates_config.special_unit_codes,
        )

    def converter(self, snapshot: RateTableSnapshot) -> CurrencyConverter:
        return CurrencyConverter(
            snapshot,
            fallback_rates=self.fallback_rates,
            base_currency=self.base_currency,
            identity_currencies=self.identity_currencies,
            special_unit_codes=self.special_unit_codes,
        )

    def compute(
        self,
        awards: list[Any] | None,
        snapshot: RateTableSnapshot,
        options: AmountOptions | None = None,
    ) -> AmountSummary:
        """Compute the AmountSummary for a release's awards.

        Args:
            awards: OCDS award list (anything non-list counts as empty)
            snapshot: Rates for this run
            options: Version bookkeeping and timestamp

        Returns:
            AmountSummary
        """
        options = options or AmountOptions()
        converter = self.converter(snapshot)

        totals: dict[str, float] = {}
        unresolved: list[str] = []
        total_items = 0
        converted_total = 0.0

        def accumulate(amount: float, currency: str) -> None:
            nonlocal converted_total
            totals[currency] = totals.get(currency, 0.0) + amount
            converted, resolved = converter.to_base(amount, currency)
            if not resolved and currency not in unresolved:
                logger.warning(f"No exchange rate found for {currency}, treating as {self.base_currency}")
                unresolved.append(currency)
            converted_total += converted

        for award in awards if isinstance(awards, list) else []:
            items = _get(award, "items")
            for item in items if isinstance(items, list) else []:
                total_items += 1
                unit_value = _get(item, "unit", "value")
                amount = positive_number(_get(unit_value, "amount"))
                if amount is None:
                    continue
                quantity = positive_number(_get(item, "quantity")) or 1.0
                accumulate(amount * quantity, _currency_of(unit_value, self.base_currency))

            award_value = _get(award, "value")
            award_amount = positive_number(_get(award_value, "amount"))
            if award_amount is not None:
                accumulate(award_amount, _currency_of(award_value, self.base_currency))

        original_base = totals.get(self.base_currency, 0.0)
        updated_at = options.computed_at or snapshot.fetched_at

        return AmountSummary(
            total_amounts=totals,
            total_items=total_items,
            currencies=list(totals),
            has_amounts=bool(totals),
            primary_amount=converted_total,
            primary_currency=self.base_currency,
            original_base_amount=original_base,
            has_converted_amounts=converted_total > original_base,
            version=self.version,
            updated_at=updated_at,
            exchange_rate_date=snapshot.last_update or updated_at.isoformat(),
            special_unit_rate=snapshot.special_unit_rate,
            was_version_update=options.was_version_update,
            previous_amount=options.previous_amount,
            unresolved_currencies=unresolved,
            include_version_info=options.include_version_info,
        )


def compute_amount_summary(
    awards: list[Any] | None,
    snapshot: RateTableSnapshot,
    options: AmountOptions | None = None,
    fallback_rates: Mapping[str, float] | None = None,
) -> AmountSummary:
    """Compute an AmountSummary with the default conversion configuration."""
    return AmountCalculator(fallback_rates=fallback_rates).compute(awards, snapshot, options)


# =============================================================================
# Version predicate
# =============================================================================


def has_item_amounts(awards: Any) -> bool:
    """True if any award item carries a non-null unit amount."""
    if not isinstance(awards, list):
        return False
    for award in awards:
        items = _get(award, "items")
        if not isinstance(items, list):
            continue
        for item in items:
            if _get(item, "unit", "value", "amount") is not None:
                return True
    return False


def stored_version(amount: Any) -> int | None:
    version = _get(amount, "version")
    if isinstance(version, bool) or not isinstance(version, int):
        return None
    return version


def needs_amount_update(
    awards: Any,
    amount: Mapping[str, Any] | None,
    target_version: int = AMOUNT_CALCULATION_VERSION,
) -> bool:
    """Whether a stored release should have its AmountSummary recomputed.

    A release qualifies when it has at least one award item amount and its
    stored summary is missing or was produced by another version.
    """
    if not has_item_amounts(awards):
        return False
    return stored_version(amount) != target_version
