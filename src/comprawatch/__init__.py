"""
CompraWatch - Incremental ingestion of public procurement releases.

Discovers OCDS releases from the government procurement feed, fetches and
normalizes them, computes base-currency amount summaries, and keeps a local
database up to date on a daily schedule.
"""

__version__ = "0.1.0"
__app_name__ = "comprawatch"
