"""
Cache key derivation for tender resources.

Keys are versioned (``v1:<resource>:<segments>``) and built from normalized
segments, so semantically equal filter sets map to the same key. Segment
normalization lower-cases, replaces whitespace runs with ``_``, removes the
delimiter characters ``: / \\ ? & #`` and truncates to 120 characters. Two
inputs that differ only in case, in those delimiters or beyond the 120th
character therefore share a key; this is accepted.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from ..filters import CanonicalFilterSet


CACHE_VERSION = "v1"
CACHE_NULL = "__CACHE_NULL__"
MAX_SEGMENT_LENGTH = 120

CACHE_TTL_SECONDS = {
    "tenders": 6 * 60 * 60,
    "tender": 24 * 60 * 60,
    "stats": 60 * 60,
    "lpse_list": 24 * 60 * 60,
    "suggestions": 5 * 60,
    "not_found": 5 * 60,
}

RESOURCES = ("tenders", "tender", "stats", "lpse-list", "suggestions")
SINGLETON_RESOURCES = ("stats", "lpse-list")

_WHITESPACE = re.compile(r"\s+")
_DELIMITERS = re.compile(r"[:/\\?&#]")


def normalize_segment(value: Any) -> str:
    """Render one key segment. Absent or empty values become ``all``."""
    if value is None:
        return "all"
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)

    text = _DELIMITERS.sub("", _WHITESPACE.sub("_", text.strip().lower()))
    text = text[:MAX_SEGMENT_LENGTH]
    return text or "all"


def tenders_list_key(page: int, limit: int, filters: Optional[CanonicalFilterSet] = None) -> str:
    filters = filters or CanonicalFilterSet()
    segments = [
        f"page{int(page)}",
        f"limit{int(limit)}",
        f"search:{normalize_segment(filters.search)}",
        f"category:{normalize_segment(filters.category)}",
        f"status:{normalize_segment(filters.status)}",
        f"minValue:{normalize_segment(filters.min_value)}",
        f"maxValue:{normalize_segment(filters.max_value)}",
        f"sourceId:{normalize_segment(filters.source_id)}",
        f"fiscalYear:{normalize_segment(filters.fiscal_year)}",
    ]
    return f"{CACHE_VERSION}:tenders:" + ":".join(segments)


def tender_detail_key(code: str) -> str:
    return f"{CACHE_VERSION}:tender:{normalize_segment(code)}"


def stats_key() -> str:
    return f"{CACHE_VERSION}:stats"


def lpse_list_key() -> str:
    return f"{CACHE_VERSION}:lpse-list"


def suggestions_key(query: str) -> str:
    return f"{CACHE_VERSION}:suggestions:{normalize_segment(query)}"


def cache_prefix(resource: str) -> str:
    """Key prefix covering every entry of a resource, used for invalidation.

    Singleton resources have no segments, so their prefix is the full key.
    """
    if resource not in RESOURCES:
        raise ValueError(f"Unknown cache resource: {resource}")
    if resource in SINGLETON_RESOURCES:
        return f"{CACHE_VERSION}:{resource}"
    return f"{CACHE_VERSION}:{resource}:"
