"""
Search mode selection and SQL predicate construction.
"""

from .modes import FullText, PrefixMatch, SearchMode, TokenMatch, select_search_mode, tokenize_search
from .query_builder import WhereClause, build_suggestion_where, build_tender_where, escape_like, paginate

__all__ = [
    "FullText",
    "PrefixMatch",
    "SearchMode",
    "TokenMatch",
    "WhereClause",
    "build_suggestion_where",
    "build_tender_where",
    "escape_like",
    "paginate",
    "select_search_mode",
    "tokenize_search",
]
