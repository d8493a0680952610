"""Exchange-rate sources."""

from .provider import (
    Rate,
    RateSourceError,
    RateTableProvider,
    RateTableSnapshot,
    parse_rate_table,
    parse_special_unit,
)

__all__ = [
    "Rate",
    "RateSourceError",
    "RateTableProvider",
    "RateTableSnapshot",
    "parse_rate_table",
    "parse_special_unit",
]
