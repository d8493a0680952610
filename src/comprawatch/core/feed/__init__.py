"""Release discovery from the per-period RSS index."""

from .discovery import (
    FeedDiscovery,
    FeedParseError,
    Period,
    ReleaseDescriptor,
    parse_feed,
    periods_between,
)
from .ids import ID_MATCHERS, extract_release_id

__all__ = [
    "FeedDiscovery",
    "FeedParseError",
    "Period",
    "ReleaseDescriptor",
    "parse_feed",
    "periods_between",
    "ID_MATCHERS",
    "extract_release_id",
]
