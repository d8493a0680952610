"""Normalization of upstream documents into storable records.

``canonical`` is imported directly by its users; it depends on the amounts
engine, which itself depends on ``parsing``.
"""

from .parsing import (
    ParsedDate,
    as_number,
    normalize_whitespace,
    parse_date,
    positive_number,
    to_utc_naive,
)
from .document import (
    DocumentValidationError,
    OcdsParty,
    OcdsRelease,
    OcdsReleasePackage,
    parse_release_package,
)

__all__ = [
    # Parsing
    "ParsedDate",
    "as_number",
    "normalize_whitespace",
    "parse_date",
    "positive_number",
    "to_utc_naive",
    # Document boundary
    "DocumentValidationError",
    "OcdsParty",
    "OcdsRelease",
    "OcdsReleasePackage",
    "parse_release_package",
]
