"""Versioned multi-currency amount computation.

The maintenance module needs the persistence layer and is imported directly.
"""

from .engine import (
    AMOUNT_CALCULATION_VERSION,
    AmountCalculator,
    AmountOptions,
    AmountSummary,
    CurrencyConverter,
    compute_amount_summary,
    has_item_amounts,
    needs_amount_update,
)

__all__ = [
    "AMOUNT_CALCULATION_VERSION",
    "AmountCalculator",
    "AmountOptions",
    "AmountSummary",
    "CurrencyConverter",
    "compute_amount_summary",
    "has_item_amounts",
    "needs_amount_update",
]
