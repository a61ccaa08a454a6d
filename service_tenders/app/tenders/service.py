"""
Cache-aware request pipeline for the tender routes.

Every cached route follows the same steps: derive the key, read the cache
unless bypassed, otherwise query the store, write the result back and report
timings, cache outcome and query counts to the monitor.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from shared.config import BaseConfig
from shared.errors import NotFoundError, StoreQueryError
from shared.logging import get_logger, set_route

from ..caching import (
    CACHE_MISS,
    CACHE_TTL_SECONDS,
    CacheStore,
    CacheWarmer,
    WarmTask,
    lpse_list_key,
    stats_key,
    suggestions_key,
    tender_detail_key,
    tenders_list_key,
)
from ..filters import TenderQuery, parse_tender_code, parse_tender_query
from ..models import ApiResponse, PaginationMeta
from ..monitoring import (
    ROUTE_LPSE,
    ROUTE_STATS,
    ROUTE_SUGGESTIONS,
    ROUTE_TENDER_DETAIL,
    ROUTE_TENDERS,
    RequestMonitor,
)
from ..persistence import postgres
from ..search import build_suggestion_where, build_tender_where, paginate
from ..transform import normalize_tender_full, normalize_tender_list, to_json_value, to_number


SUGGESTION_LIMIT = 10
HIT = "HIT"
MISS = "MISS"
BYPASS = "BYPASS"


@dataclass
class ServedResult:
    """A payload plus the cache facts reported in response headers."""

    payload: Any
    cache_status: Optional[str] = None
    cache_key: Optional[str] = None
    ttl_seconds: Optional[int] = None
    duration_ms: float = 0.0

    def headers(self) -> Dict[str, str]:
        headers = {"x-response-time": f"{self.duration_ms:.2f}ms"}
        if self.cache_status:
            headers["x-cache"] = self.cache_status
        if self.cache_key:
            headers["x-cache-key"] = self.cache_key
        if self.ttl_seconds:
            headers["Cache-Control"] = (
                f"public, s-maxage={self.ttl_seconds}, stale-while-revalidate={self.ttl_seconds // 2}"
            )
        return headers


class TenderQueryService:
    """Serves tender listings, details, suggestions, stats and the authority list."""

    def __init__(
        self,
        repository,
        cache: CacheStore,
        warmer: CacheWarmer,
        monitor: RequestMonitor,
        config: BaseConfig,
    ):
        self.repository = repository
        self.cache = cache
        self.warmer = warmer
        self.monitor = monitor
        self.config = config
        self.logger = get_logger("tenders.service")

    async def _serve(
        self,
        route: str,
        key: str,
        ttl_seconds: int,
        bypass: bool,
        loader: Callable[[], Awaitable[Any]],
        *,
        null_ttl_seconds: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ServedResult:
        start = time.perf_counter()
        set_route(route)
        try:
            if not bypass:
                cached = await self.cache.get(key)
                if cached is not CACHE_MISS:
                    self.monitor.record_cache_hit(route)
                    duration_ms = (time.perf_counter() - start) * 1000
                    self.monitor.record_timing(route, duration_ms)
                    return ServedResult(cached, HIT, key, ttl_seconds, duration_ms)
                self.monitor.record_cache_miss(route)

            try:
                payload = await loader()
            except StoreQueryError as exc:
                self.monitor.record_error(route)
                self.logger.error(
                    "Store query failed",
                    route=route,
                    cache_key=key,
                    error=exc.details.get("cause"),
                    **(context or {}),
                )
                raise

            write_ttl = ttl_seconds if payload is not None else (null_ttl_seconds or ttl_seconds)
            await asyncio.shield(self.cache.set(key, payload, write_ttl))

            duration_ms = (time.perf_counter() - start) * 1000
            self.monitor.record_timing(route, duration_ms)
            return ServedResult(payload, BYPASS if bypass else MISS, key, ttl_seconds, duration_ms)
        finally:
            self.monitor.log_if_needed(route)

    async def _load_tender_page(self, route: str, query: TenderQuery) -> Dict[str, Any]:
        where = build_tender_where(query.filters, self.config.full_text_search)
        rows, total = await self.repository.fetch_tender_page(where, query.limit, query.skip)
        self.monitor.record_db_query(route, postgres.PAGE_QUERIES)
        return ApiResponse(
            data=normalize_tender_list(rows),
            pagination=PaginationMeta(**paginate(total, query.page, query.limit)),
        ).to_payload()

    async def list_tenders(self, params: Mapping[str, Any], bypass: bool = False) -> ServedResult:
        query = parse_tender_query(params)
        key = tenders_list_key(query.page, query.limit, query.filters)
        return await self._serve(
            ROUTE_TENDERS,
            key,
            CACHE_TTL_SECONDS["tenders"],
            bypass,
            lambda: self._load_tender_page(ROUTE_TENDERS, query),
            context={"filters": asdict(query.filters), "page": query.page, "limit": query.limit},
        )

    async def get_tender(self, raw_code: Any, bypass: bool = False) -> ServedResult:
        """Serve one tender. Confirmed misses are cached briefly as a null entry."""
        code = parse_tender_code(raw_code)

        async def load() -> Optional[Dict[str, Any]]:
            row = await self.repository.fetch_tender(code)
            self.monitor.record_db_query(ROUTE_TENDER_DETAIL, postgres.DETAIL_QUERIES)
            if row is None:
                return None
            return ApiResponse(data=normalize_tender_full(row)).to_payload()

        result = await self._serve(
            ROUTE_TENDER_DETAIL,
            tender_detail_key(code),
            CACHE_TTL_SECONDS["tender"],
            bypass,
            load,
            null_ttl_seconds=CACHE_TTL_SECONDS["not_found"],
            context={"code": code},
        )
        if result.payload is None:
            result = replace(result, ttl_seconds=CACHE_TTL_SECONDS["not_found"])
            raise NotFoundError("Tender not found", details={"code": code}, headers=result.headers())
        return result

    async def suggest(self, raw_query: Optional[str], bypass: bool = False) -> ServedResult:
        """Typeahead suggestions. Unusable queries return no rows without touching the store."""
        query = (raw_query or "").strip()
        where = build_suggestion_where(query)
        if where is None:
            return ServedResult(
                ApiResponse(data=[]).to_payload(),
                BYPASS,
                suggestions_key(query),
                CACHE_TTL_SECONDS["suggestions"],
            )

        async def load() -> Dict[str, Any]:
            rows = await self.repository.fetch_suggestions(where, SUGGESTION_LIMIT)
            self.monitor.record_db_query(ROUTE_SUGGESTIONS, postgres.SUGGESTION_QUERIES)
            suggestions = [
                {
                    "id": row["id"],
                    "kode_tender": to_json_value(row["kode_tender"]),
                    "nama_tender": row["nama_tender"],
                    "kategori_pekerjaan": row["kategori_pekerjaan"],
                    "status_tender": row["status_tender"],
                    "lpse_nama": row["lpse_nama"],
                    "nilai_pagu": to_number(row["nilai_pagu"]),
                }
                for row in rows
            ]
            return ApiResponse(data=suggestions).to_payload()

        return await self._serve(
            ROUTE_SUGGESTIONS,
            suggestions_key(query),
            CACHE_TTL_SECONDS["suggestions"],
            bypass,
            load,
            context={"query": query},
        )

    async def load_stats(self) -> Dict[str, Any]:
        stats = await self.repository.fetch_stats()
        self.monitor.record_db_query(ROUTE_STATS, postgres.STATS_QUERIES)
        data = {
            "totalTenders": stats["total_tenders"],
            "totalLpse": stats["total_lpse"],
            "avgNilaiPagu": to_number(stats["avg_nilai_pagu"]) or 0,
            "byKategori": {name: total for name, total in stats["by_category"] if name},
            "byStatus": {name: total for name, total in stats["by_status"] if name},
            "byProvinsi": {name: total for name, total in stats["by_province"] if name},
            "recentTenders": normalize_tender_list(stats["recent"]),
        }
        return ApiResponse(data=data).to_payload()

    async def get_stats(self, bypass: bool = False) -> ServedResult:
        """Serve aggregate statistics and, on a miss, warm the default listing and directory."""
        result = await self._serve(ROUTE_STATS, stats_key(), CACHE_TTL_SECONDS["stats"], bypass, self.load_stats)
        if result.cache_status != HIT:
            self.schedule_default_warming()
        return result

    def default_warm_tasks(self):
        default_page = TenderQuery()
        return [
            WarmTask(
                key=tenders_list_key(default_page.page, default_page.limit, default_page.filters),
                ttl_seconds=CACHE_TTL_SECONDS["tenders"],
                fetcher=lambda: self._load_tender_page(ROUTE_TENDERS, default_page),
            ),
            WarmTask(
                key=lpse_list_key(),
                ttl_seconds=CACHE_TTL_SECONDS["lpse_list"],
                fetcher=self._load_lpse,
            ),
        ]

    def schedule_default_warming(self) -> None:
        for task in self.default_warm_tasks():
            self.warmer.schedule(task)

    async def _load_lpse(self) -> Dict[str, Any]:
        rows = await self.repository.fetch_lpse_list()
        self.monitor.record_db_query(ROUTE_LPSE, postgres.LPSE_QUERIES)
        return ApiResponse(data=[to_json_value(dict(row)) for row in rows]).to_payload()

    async def list_lpse(self, bypass: bool = False) -> ServedResult:
        return await self._serve(ROUTE_LPSE, lpse_list_key(), CACHE_TTL_SECONDS["lpse_list"], bypass, self._load_lpse)
