"""
Tests for amount calculation.
"""

from __future__ import annotations

import copy
import random
from datetime import datetime, timezone

import pytest

from comprawatch.core.amounts.engine import (
    AMOUNT_CALCULATION_VERSION,
    AmountCalculator,
    AmountOptions,
    has_item_amounts,
    needs_amount_update,
)
from comprawatch.core.rates.provider import Rate, RateTableSnapshot

from .conftest import build_award

FIXED = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
CURRENCIES = ["UYU", "USD", "EUR", "UI", "UYI", "UUYI", "BRL", "XYZ", None]


def random_awards(rng: random.Random) -> list[dict]:
    """Awards with mixed currencies, quantities and some unusable values."""
    awards: list[dict] = []
    for index in range(rng.randint(0, 6)):
        amount = rng.choice([round(rng.uniform(0.01, 50_000), 2), rng.randint(1, 900), "100", 0, -3])
        award = build_award(
            amount,
            rng.choice(CURRENCIES),
            quantity=rng.choice([None, 1, rng.randint(2, 25), round(rng.uniform(0.5, 10), 1)]),
            id=f"award-{index}",
        )
        if rng.random() < 0.3:
            award["value"] = {"amount": rng.randint(1, 10_000), "currency": rng.choice(CURRENCIES[:-1])}
        awards.append(award)
    return awards


@pytest.fixture
def calculator() -> AmountCalculator:
    return AmountCalculator()


@pytest.fixture
def live_snapshot() -> RateTableSnapshot:
    return RateTableSnapshot(
        base_currency="UYU",
        rates={
            "USD": Rate(from_=1.0),
            "UYU": Rate(from_=40.0),
            "EUR": Rate(from_=0.8),
        },
        last_update="2025-03-01",
        special_unit_rate=6.0,
        fetched_at=FIXED,
    )


# =============================================================================
# Conversion
# =============================================================================


class TestConversion:
    """Primary amount conversion into the base currency."""

    def test_fallback_usd_when_no_live_rates(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(100, "USD", quantity=2)], empty_snapshot)

        assert summary.total_amounts == {"USD": 200.0}
        assert summary.primary_amount == pytest.approx(8000.0)
        assert summary.primary_currency == "UYU"
        assert summary.original_base_amount == 0.0
        assert summary.has_converted_amounts is True
        assert summary.total_items == 1

    def test_base_currency_is_not_converted(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(500, "UYU", quantity=1)], empty_snapshot)

        assert summary.primary_amount == pytest.approx(500.0)
        assert summary.original_base_amount == pytest.approx(500.0)
        assert summary.has_converted_amounts is False

    def test_missing_currency_counts_as_base(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(250, None, quantity=1)], empty_snapshot)

        assert summary.total_amounts == {"UYU": 250.0}
        assert summary.primary_amount == pytest.approx(250.0)

    def test_live_rate_goes_through_table_base(self, calculator, live_snapshot):
        summary = calculator.compute([build_award(80, "EUR", quantity=1)], live_snapshot)

        # 80 EUR / 0.8 = 100 USD, times 40 UYU per USD
        assert summary.primary_amount == pytest.approx(4000.0)
        assert summary.exchange_rate_date == "2025-03-01"

    def test_indexed_unit_uses_live_special_rate(self, calculator, live_snapshot):
        summary = calculator.compute([build_award(10, "UI", quantity=1)], live_snapshot)

        assert summary.primary_amount == pytest.approx(60.0)
        assert summary.special_unit_rate == 6.0

    def test_indexed_unit_falls_back_without_live_rate(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(10, "UYI", quantity=1)], empty_snapshot)

        assert summary.primary_amount == pytest.approx(63.6)

    def test_identity_currency(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(10, "UUYI", quantity=1)], empty_snapshot)

        assert summary.primary_amount == pytest.approx(10.0)

    def test_unknown_currency_is_reported(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(50, "XYZ", quantity=1)], empty_snapshot)

        assert summary.primary_amount == pytest.approx(50.0)
        assert summary.unresolved_currencies == ["XYZ"]
        assert summary.to_dict()["unresolvedCurrencies"] == ["XYZ"]

    def test_configured_fallback_table(self, empty_snapshot):
        calculator = AmountCalculator(fallback_rates={"USD": 50.0})
        summary = calculator.compute([build_award(1, "USD", quantity=1)], empty_snapshot)

        assert summary.primary_amount == pytest.approx(50.0)


# =============================================================================
# Aggregation
# =============================================================================


class TestAggregation:
    """Which values are counted and how."""

    def test_string_amounts_are_ignored(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award("100", "USD", quantity=1)], empty_snapshot)

        assert summary.has_amounts is False
        assert summary.total_items == 1
        assert summary.primary_amount == 0.0

    def test_zero_and_negative_amounts_are_ignored(self, calculator, empty_snapshot):
        awards = [build_award(0, "UYU"), build_award(-5, "UYU")]
        summary = calculator.compute(awards, empty_snapshot)

        assert summary.has_amounts is False
        assert summary.total_items == 2

    def test_missing_quantity_defaults_to_one(self, calculator, empty_snapshot):
        summary = calculator.compute([build_award(75, "UYU", quantity=None)], empty_snapshot)

        assert summary.primary_amount == pytest.approx(75.0)

    def test_award_level_value_is_added(self, calculator, empty_snapshot):
        award = {"id": "a1", "value": {"amount": 1000, "currency": "UYU"}, "items": []}
        summary = calculator.compute([award], empty_snapshot)

        assert summary.primary_amount == pytest.approx(1000.0)
        assert summary.total_items == 0

    def test_mixed_currencies(self, calculator, empty_snapshot):
        awards = [build_award(100, "UYU", quantity=1), build_award(10, "USD", quantity=1)]
        summary = calculator.compute(awards, empty_snapshot)

        assert summary.currencies == ["UYU", "USD"]
        assert summary.primary_amount == pytest.approx(500.0)
        assert summary.original_base_amount == pytest.approx(100.0)

    def test_non_list_awards(self, calculator, empty_snapshot):
        summary = calculator.compute(None, empty_snapshot)

        assert summary.has_amounts is False
        assert summary.total_amounts == {}

    def test_deterministic(self, calculator, live_snapshot):
        rng = random.Random(7)
        options = AmountOptions(computed_at=FIXED)

        for _ in range(50):
            awards = random_awards(rng)
            first = calculator.compute(copy.deepcopy(awards), live_snapshot, options).to_dict()
            second = calculator.compute(copy.deepcopy(awards), live_snapshot, options).to_dict()
            assert first == second

    def test_primary_amount_covers_base_currency_total(self, calculator, live_snapshot, empty_snapshot):
        rng = random.Random(11)

        for _ in range(50):
            awards = random_awards(rng)
            awards.append(build_award(round(rng.uniform(0.01, 500), 2), "USD", quantity=1))
            for snapshot in (live_snapshot, empty_snapshot):
                summary = calculator.compute(awards, snapshot)
                assert summary.primary_amount >= summary.original_base_amount
                assert summary.has_converted_amounts is True

    def test_adding_an_item_never_lowers_primary_amount(self, calculator, live_snapshot):
        rng = random.Random(20250315)
        currencies = ["UYU", "USD", "EUR", "UI", "BRL", "XYZ"]
        awards: list[dict] = []
        previous = 0.0

        for _ in range(40):
            awards.append(
                build_award(
                    round(rng.uniform(0.01, 10_000), 2),
                    rng.choice(currencies),
                    quantity=rng.randint(1, 20),
                )
            )
            current = calculator.compute(awards, live_snapshot).primary_amount
            assert current >= previous
            previous = current


# =============================================================================
# Serialization and versioning
# =============================================================================


class TestSummaryVersioning:
    """Version bookkeeping and the maintenance predicate."""

    def test_version_info_included(self, calculator, empty_snapshot):
        options = AmountOptions(was_version_update=True, previous_amount=123.0, computed_at=FIXED)
        data = calculator.compute([build_award()], empty_snapshot, options).to_dict()

        assert data["version"] == AMOUNT_CALCULATION_VERSION
        assert data["wasVersionUpdate"] is True
        assert data["previousAmount"] == 123.0
        assert data["updatedAt"] == FIXED.isoformat()

    def test_version_info_omitted(self, calculator, empty_snapshot):
        options = AmountOptions(include_version_info=False)
        data = calculator.compute([build_award()], empty_snapshot, options).to_dict()

        assert "wasVersionUpdate" not in data
        assert "exchangeRateDate" not in data
        assert data["version"] == AMOUNT_CALCULATION_VERSION

    def test_content_dict_ignores_bookkeeping(self, calculator, empty_snapshot):
        awards = [build_award()]
        first = calculator.compute(awards, empty_snapshot, AmountOptions(computed_at=FIXED))
        second = calculator.compute(
            awards,
            empty_snapshot,
            AmountOptions(computed_at=datetime(2026, 1, 1, tzinfo=timezone.utc), was_version_update=True),
        )

        assert first.content_dict() == second.content_dict()

    def test_has_item_amounts(self):
        assert has_item_amounts([build_award()]) is True
        assert has_item_amounts([{"items": [{"unit": {"value": {}}}]}]) is False
        assert has_item_amounts(None) is False

    @pytest.mark.parametrize(
        "amount, expected",
        [
            (None, True),
            ({"version": 1}, True),
            ({"version": AMOUNT_CALCULATION_VERSION}, False),
            ({"primaryAmount": 10}, True),
        ],
    )
    def test_needs_amount_update(self, amount, expected):
        assert needs_amount_update([build_award()], amount) is expected

    def test_no_item_amounts_never_needs_update(self):
        assert needs_amount_update([{"items": []}], None) is False
