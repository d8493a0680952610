"""
Release id extraction from feed entries.

Feed entries do not carry a dedicated id element, so the id is recovered from
the entry's title, link or guid by an ordered chain of matchers. The first
matcher that returns a value wins. The chain is heuristic: the portal has
changed its entry format before, and new shapes should be added as new
matchers rather than by loosening existing ones.
"""

from __future__ import annotations

import re
from typing import Callable

Matcher = Callable[[str], "str | None"]


_STRUCTURED_KEY = re.compile(r"release_id:([^,\s]+)", re.IGNORECASE)
_OCDS_ID = re.compile(r"ocds-70d2nz-([A-Za-z0-9\-_]+)", re.IGNORECASE)
_DOMAIN_PREFIX = re.compile(r"(adjudicacion|contrato|compra|licitacion)-([A-Za-z0-9\-_]+)", re.IGNORECASE)
_RELEASE_SEGMENT = re.compile(r"release[/\s]*([A-Za-z0-9\-_]+)", re.IGNORECASE)
_ID_SEGMENT = re.compile(r"\bid[/\s]*([A-Za-z0-9\-_]{3,})", re.IGNORECASE)
_NUMERIC = re.compile(r"\b(\d{6,})\b")
_ID_SHAPED = re.compile(r"^[A-Za-z0-9\-_]+$")

OCDS_PREFIX = "ocds-70d2nz-"
MIN_RAW_ID_LENGTH = 6


def match_structured_key(source: str) -> str | None:
    """``id_compra:123,release_id:adjudicacion-456`` -> ``adjudicacion-456``."""
    m = _STRUCTURED_KEY.search(source)
    return m.group(1) if m else None


def match_ocds_id(source: str) -> str | None:
    """Full OCDS id, returned with its prefix."""
    m = _OCDS_ID.search(source)
    return f"{OCDS_PREFIX}{m.group(1)}" if m else None


def match_domain_prefix(source: str) -> str | None:
    """``adjudicacion-1219109`` and friends, whole match."""
    m = _DOMAIN_PREFIX.search(source)
    return m.group(0) if m else None


def match_release_segment(source: str) -> str | None:
    m = _RELEASE_SEGMENT.search(source)
    return m.group(1) if m else None


def match_id_segment(source: str) -> str | None:
    m = _ID_SEGMENT.search(source)
    return m.group(1) if m else None


def match_numeric(source: str) -> str | None:
    m = _NUMERIC.search(source)
    return m.group(1) if m else None


# Order matters: most specific first.
ID_MATCHERS: tuple[Matcher, ...] = (
    match_structured_key,
    match_ocds_id,
    match_domain_prefix,
    match_release_segment,
    match_id_segment,
    match_numeric,
)


def _looks_like_id(value: str | None) -> bool:
    return bool(value) and len(value) >= MIN_RAW_ID_LENGTH and bool(_ID_SHAPED.match(value))


def extract_release_id(
    title: str | None,
    link: str | None,
    guid: str | None = None,
    matchers: tuple[Matcher, ...] = ID_MATCHERS,
) -> str | None:
    """Extract a release id from a feed entry.

    Each source (title, link, guid) is tried in turn against the full matcher
    chain. When nothing matches, the raw title or guid is used if it is
    id-shaped.

    Args:
        title: Entry title
        link: Entry link
        guid: Entry guid
        matchers: Ordered matcher chain

    Returns:
        The release id, or None if the entry carries no recognizable id
    """
    sources = [s for s in (title, link, guid) if s]

    for source in sources:
        for matcher in matchers:
            found = matcher(source)
            if found:
                return found

    if _looks_like_id(title):
        return title
    if _looks_like_id(guid):
        return guid
    return None
