"""
Search mode selection.

Each free-text search is routed to exactly one strategy:

- ``PrefixMatch``: the term is all digits (two or more), so it is treated as a
  tender or plan code prefix.
- ``FullText``: the store's native full-text operator, only when enabled.
- ``TokenMatch``: the default; the term is split into at most six tokens that
  must all match one of the searchable fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ..filters import sanitize_input
from ..filters.query import MAX_SEARCH_LENGTH


MAX_TOKENS = 6
MIN_TOKEN_LENGTH = 2

_CODE_PREFIX = re.compile(r"^\d{2,}$")


@dataclass(frozen=True)
class PrefixMatch:
    term: str


@dataclass(frozen=True)
class TokenMatch:
    tokens: Tuple[str, ...]


@dataclass(frozen=True)
class FullText:
    term: str


SearchMode = Union[PrefixMatch, TokenMatch, FullText]


def looks_like_code(search: Optional[str]) -> bool:
    return bool(search) and bool(_CODE_PREFIX.match(search.strip()))


def tokenize_search(search: Optional[str]) -> Tuple[str, ...]:
    """Split a search string into lower-cased tokens longer than one character."""
    cleaned = sanitize_input(search, MAX_SEARCH_LENGTH)
    if not cleaned:
        return ()

    tokens = [token.strip().lower() for token in cleaned.split(" ")]
    return tuple(token for token in tokens if len(token) >= MIN_TOKEN_LENGTH)[:MAX_TOKENS]


def select_search_mode(search: Optional[str], full_text_enabled: bool = False) -> Optional[SearchMode]:
    """Pick the strategy for ``search``. Returns None when nothing is searchable."""
    if not search or not search.strip():
        return None

    if looks_like_code(search):
        return PrefixMatch(search.strip())

    tokens = tokenize_search(search)
    if not tokens:
        return None

    if full_text_enabled:
        return FullText(sanitize_input(search, MAX_SEARCH_LENGTH))
    return TokenMatch(tokens)
