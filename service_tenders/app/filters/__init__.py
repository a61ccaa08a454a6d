"""
Listing filter parsing and normalization.
"""

from .query import (
    CanonicalFilterSet,
    TenderQuery,
    TenderQueryParams,
    parse_tender_code,
    parse_tender_query,
    sanitize_input,
)

__all__ = [
    "CanonicalFilterSet",
    "TenderQuery",
    "TenderQueryParams",
    "parse_tender_code",
    "parse_tender_query",
    "sanitize_input",
]
