"""
Per-route request monitoring.
"""

from .monitor import CacheStat, RequestMonitor, TimingEntry, percentile

ROUTE_TENDERS = "api.tenders"
ROUTE_TENDER_DETAIL = "api.tenders.detail"
ROUTE_SUGGESTIONS = "api.tenders.search"
ROUTE_STATS = "api.stats"
ROUTE_LPSE = "api.lpse"

__all__ = [
    "CacheStat",
    "RequestMonitor",
    "TimingEntry",
    "percentile",
    "ROUTE_TENDERS",
    "ROUTE_TENDER_DETAIL",
    "ROUTE_SUGGESTIONS",
    "ROUTE_STATS",
    "ROUTE_LPSE",
]
