"""
Tender cache layer: key derivation, stores and warming.
"""

from .keys import (
    CACHE_NULL,
    CACHE_TTL_SECONDS,
    CACHE_VERSION,
    RESOURCES,
    cache_prefix,
    lpse_list_key,
    stats_key,
    suggestions_key,
    tender_detail_key,
    tenders_list_key,
)
from .store import CACHE_MISS, CacheStore, NullCacheStore, RedisCacheStore, create_cache_store
from .warmer import CacheWarmer, WarmTask

__all__ = [
    "CACHE_MISS",
    "CACHE_NULL",
    "CACHE_TTL_SECONDS",
    "CACHE_VERSION",
    "RESOURCES",
    "CacheStore",
    "CacheWarmer",
    "NullCacheStore",
    "RedisCacheStore",
    "WarmTask",
    "cache_prefix",
    "create_cache_store",
    "lpse_list_key",
    "stats_key",
    "suggestions_key",
    "tender_detail_key",
    "tenders_list_key",
]
