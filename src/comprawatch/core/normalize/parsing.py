"""
Parsing utilities for normalizing upstream data.

Handles dates (ISO 8601 from OCDS documents, RFC 822 from RSS) and the
numeric checks used by amount calculation.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import dateparser


# =============================================================================
# Date Parsing
# =============================================================================


@dataclass
class ParsedDate:
    """Result of parsing a date string."""

    value: datetime | None
    original: str
    confidence: float  # 0.0 - 1.0
    format_detected: str | None = None


_ISO_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[T\s](\d{2}):(\d{2})(?::(\d{2})(?:\.(\d{1,6})\d*)?)?)?"
    r"\s*(Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)

_RFC822_PATTERN = re.compile(r"^(?:[A-Za-z]{3},\s*)?\d{1,2}\s+[A-Za-z]{3}\s+\d{4}")


def to_utc_naive(value: datetime) -> datetime:
    """Convert to UTC and drop tzinfo (naive datetimes are assumed UTC)."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_offset(text: str | None) -> timezone | None:
    if not text:
        return None
    if text.upper() == "Z":
        return timezone.utc
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    hours, minutes = int(digits[:2]), int(digits[2:4])
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _try_iso(text: str) -> datetime | None:
    match = _ISO_PATTERN.match(text)
    if not match:
        return None
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    try:
        dt = datetime(
            int(year),
            int(month),
            int(day),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            int((fraction or "0").ljust(6, "0")),
            tzinfo=_parse_offset(offset),
        )
    except ValueError:
        return None
    return dt


def _try_rfc822(text: str) -> datetime | None:
    if not _RFC822_PATTERN.match(text):
        return None
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None


def parse_date(value: str | datetime | date | None) -> ParsedDate:
    """Parse a date/datetime from upstream formats.

    Handles:
    - ISO 8601 with optional time, fraction and offset (OCDS)
    - RFC 822 (RSS ``pubDate``)
    - Anything else dateparser understands

    Returned values are naive UTC.

    Args:
        value: String or datetime to parse

    Returns:
        ParsedDate with parsed value and metadata
    """
    if value is None:
        return ParsedDate(value=None, original="", confidence=0.0)

    if isinstance(value, datetime):
        return ParsedDate(
            value=to_utc_naive(value),
            original=value.isoformat(),
            confidence=1.0,
            format_detected="datetime",
        )

    if isinstance(value, date):
        return ParsedDate(
            value=datetime.combine(value, time.min),
            original=value.isoformat(),
            confidence=1.0,
            format_detected="date",
        )

    original = str(value).strip()
    text = " ".join(original.split())

    if not text:
        return ParsedDate(value=None, original=original, confidence=0.0)

    # Fast paths first
    parsed = _try_iso(text)
    if parsed is not None:
        return ParsedDate(to_utc_naive(parsed), original, 1.0, "iso8601")

    parsed = _try_rfc822(text)
    if parsed is not None:
        return ParsedDate(to_utc_naive(parsed), original, 0.95, "rfc822")

    settings = {
        "DATE_ORDER": "DMY",
        "RETURN_AS_TIMEZONE_AWARE": True,
        "TO_TIMEZONE": "UTC",
        "PREFER_DAY_OF_MONTH": "first",
    }
    parsed = dateparser.parse(text, settings=settings)
    if parsed is not None:
        return ParsedDate(to_utc_naive(parsed), original, 0.7, "dateparser")

    return ParsedDate(value=None, original=original, confidence=0.0)


# =============================================================================
# Numeric checks
# =============================================================================


def as_number(value: Any) -> float | None:
    """Return ``value`` as a float if it is a real, finite JSON number.

    Strings and booleans are not numbers here: upstream amounts that arrive
    as strings are treated as missing.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def positive_number(value: Any) -> float | None:
    """Return ``value`` as a float if it is a number greater than zero."""
    number = as_number(value)
    if number is None or number <= 0:
        return None
    return number


# =============================================================================
# Utility Functions
# =============================================================================


def normalize_whitespace(text: str | None) -> str:
    """Normalize whitespace in text."""
    if text is None:
        return ""
    return " ".join(text.split())
