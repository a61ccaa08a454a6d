"""
Parameterized WHERE clause construction for tender queries.

User input only ever travels as ``$n`` parameters. The clause assumes the
tenders table is aliased ``t`` and the issuing authority table ``l``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..filters import CanonicalFilterSet
from .modes import FullText, PrefixMatch, SearchMode, TokenMatch, select_search_mode


SUGGESTION_MIN_LENGTH = 2

_TENDER_CODE = "COALESCE(t.kode_tender::text, '')"
_PLAN_CODE = "COALESCE(t.kode_rup::text, '')"
_LIKE_ESCAPE = "ESCAPE '\\'"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class WhereClause:
    """A conjunction of SQL conditions with positional parameters."""

    conditions: Tuple[str, ...] = ()
    params: Tuple[Any, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    @property
    def sql(self) -> str:
        if self.is_empty:
            return ""
        return "WHERE " + " AND ".join(self.conditions)


class _ClauseBuilder:
    def __init__(self):
        self.conditions: List[str] = []
        self.params: List[Any] = []

    def param(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def add(self, condition: str) -> None:
        self.conditions.append(condition)

    def build(self) -> WhereClause:
        return WhereClause(tuple(self.conditions), tuple(self.params))


def _add_search(builder: _ClauseBuilder, mode: SearchMode) -> None:
    if isinstance(mode, PrefixMatch):
        ref = builder.param(f"{escape_like(mode.term)}%")
        builder.add(
            f"({_TENDER_CODE} LIKE {ref} {_LIKE_ESCAPE} OR {_PLAN_CODE} LIKE {ref} {_LIKE_ESCAPE})"
        )
    elif isinstance(mode, FullText):
        term = builder.param(mode.term)
        raw = builder.param(f"%{escape_like(mode.term)}%")
        builder.add(
            "(to_tsvector('simple', coalesce(t.nama_tender, '') || ' ' || coalesce(l.nama_lpse, ''))"
            f" @@ websearch_to_tsquery('simple', {term})"
            f" OR {_TENDER_CODE} LIKE {raw} {_LIKE_ESCAPE}"
            f" OR {_PLAN_CODE} LIKE {raw} {_LIKE_ESCAPE})"
        )
    elif isinstance(mode, TokenMatch):
        for token in mode.tokens:
            ref = builder.param(f"%{escape_like(token)}%")
            builder.add(
                f"(t.nama_tender ILIKE {ref} {_LIKE_ESCAPE}"
                f" OR {_TENDER_CODE} LIKE {ref} {_LIKE_ESCAPE}"
                f" OR {_PLAN_CODE} LIKE {ref} {_LIKE_ESCAPE}"
                f" OR l.nama_lpse ILIKE {ref} {_LIKE_ESCAPE})"
            )


def build_tender_where(filters: CanonicalFilterSet, full_text_enabled: bool = False) -> WhereClause:
    """Build the listing predicate shared by the row fetch and the count."""
    if filters.is_empty:
        return WhereClause()

    builder = _ClauseBuilder()

    mode = select_search_mode(filters.search, full_text_enabled)
    if mode is not None:
        _add_search(builder, mode)

    if filters.category:
        builder.add(
            f"t.kategori_pekerjaan ILIKE {builder.param(f'%{escape_like(filters.category)}%')} {_LIKE_ESCAPE}"
        )
    if filters.status:
        builder.add(f"LOWER(t.status_tender) = LOWER({builder.param(filters.status)})")
    if filters.source_id is not None:
        builder.add(f"t.lpse_id = {builder.param(filters.source_id)}")
    if filters.fiscal_year is not None:
        builder.add(f"t.tahun_anggaran = {builder.param(filters.fiscal_year)}")
    if filters.min_value is not None:
        builder.add(f"t.nilai_pagu >= {builder.param(Decimal(str(filters.min_value)))}")
    if filters.max_value is not None:
        builder.add(f"t.nilai_pagu <= {builder.param(Decimal(str(filters.max_value)))}")

    return builder.build()


def build_suggestion_where(query: Optional[str]) -> Optional[WhereClause]:
    """Predicate for typeahead suggestions, or None when the query is unusable.

    Suggestions never use full-text search.
    """
    if not query or len(query.strip()) < SUGGESTION_MIN_LENGTH:
        return None

    mode = select_search_mode(query, full_text_enabled=False)
    if mode is None:
        return None

    builder = _ClauseBuilder()
    _add_search(builder, mode)
    return builder.build()


def paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasMore": page < total_pages,
    }
