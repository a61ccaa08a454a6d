"""
PostgreSQL read access for the tender service.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from shared.errors import StoreQueryError
from shared.logging import get_logger
from ..search import WhereClause


TENDER_COLUMNS = """
    t.id, t.kode_tender, t.kode_rup, t.nama_tender, t.kategori_pekerjaan,
    t.status_tender, t.tahap_saat_ini, t.nilai_pagu, t.nilai_hps,
    t.tahun_anggaran, t.url_detail, t.lpse_id, t.created_at, t.updated_at,
    CASE WHEN l.id IS NULL THEN NULL ELSE to_jsonb(l) END AS lpse
"""

TENDER_FROM = "FROM tenders t LEFT JOIN lpse l ON l.id = t.lpse_id"

STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

# Statements issued per repository call
PAGE_QUERIES = 2
DETAIL_QUERIES = 1
SUGGESTION_QUERIES = 1
STATS_QUERIES = 7
LPSE_QUERIES = 1


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")
    await conn.set_type_codec("json", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


class TenderRepository:
    """Parameterized read queries over tenders and issuing authorities."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("tenders.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

    async def start(self):
        """Open the connection pool."""
        try:
            await self._ensure_pool()
        except StoreQueryError as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=e.details.get("cause"))
            raise
        self.logger.info("PostgreSQL persistence started")

    async def stop(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self.pool is not None:
            return self.pool
        async with self._pool_lock:
            if self.pool is None:
                try:
                    self.pool = await asyncpg.create_pool(
                        self.dsn,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        command_timeout=self.command_timeout,
                        init=_init_connection,
                    )
                except STORE_ERRORS as e:
                    raise StoreQueryError(details={"cause": str(e), "operation": "connect"}) from e
        return self.pool

    async def health_check(self) -> str:
        try:
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except (StoreQueryError, *STORE_ERRORS) as e:
            self.logger.warning("PostgreSQL health check failed", error=str(e))
            return "error"
        return "ok"

    async def fetch_tender_page(
        self, where: WhereClause, limit: int, offset: int
    ) -> Tuple[List[asyncpg.Record], int]:
        """Fetch one listing page and the total match count.

        Both statements share ``where`` and run in one read-only REPEATABLE READ
        transaction, so the count and the rows describe the same snapshot.
        """
        params = list(where.params)
        limit_ref = f"${len(params) + 1}"
        offset_ref = f"${len(params) + 2}"
        rows_sql = f"""
            SELECT {TENDER_COLUMNS}
            {TENDER_FROM}
            {where.sql}
            ORDER BY t.created_at DESC, t.id DESC
            LIMIT {limit_ref} OFFSET {offset_ref}
        """
        count_sql = f"SELECT COUNT(*)::int AS total {TENDER_FROM} {where.sql}"

        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    rows = await conn.fetch(rows_sql, *params, limit, offset)
                    total = await conn.fetchval(count_sql, *params)
        except STORE_ERRORS as e:
            raise StoreQueryError(details={"cause": str(e), "operation": "fetch_tender_page"}) from e

        return rows, int(total or 0)

    async def fetch_tender(self, code: str) -> Optional[asyncpg.Record]:
        """Fetch one tender with its authority and detail record."""
        sql = f"""
            SELECT {TENDER_COLUMNS},
                   CASE WHEN d.tender_id IS NULL THEN NULL ELSE to_jsonb(d) END AS tender_details
            {TENDER_FROM}
            LEFT JOIN tender_details d ON d.tender_id = t.id
            WHERE t.kode_tender::text = $1
            LIMIT 1
        """
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchrow(sql, code)
        except STORE_ERRORS as e:
            raise StoreQueryError(details={"cause": str(e), "operation": "fetch_tender"}) from e

    async def fetch_suggestions(self, where: WhereClause, limit: int) -> List[asyncpg.Record]:
        params = list(where.params)
        sql = f"""
            SELECT t.id, t.kode_tender, t.nama_tender, t.kategori_pekerjaan, t.status_tender,
                   l.nama_lpse AS lpse_nama, t.nilai_pagu
            {TENDER_FROM}
            {where.sql}
            ORDER BY t.created_at DESC, t.id DESC
            LIMIT ${len(params) + 1}
        """
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(sql, *params, limit)
        except STORE_ERRORS as e:
            raise StoreQueryError(details={"cause": str(e), "operation": "fetch_suggestions"}) from e

    async def fetch_stats(self) -> Dict[str, Any]:
        """Aggregate counts for the statistics page."""
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    total_tenders = await conn.fetchval("SELECT COUNT(*)::int FROM tenders")
                    total_lpse = await conn.fetchval("SELECT COUNT(*)::int FROM lpse")
                    avg_budget = await conn.fetchval("SELECT AVG(nilai_pagu) FROM tenders")
                    by_category = await conn.fetch("""
                        SELECT kategori_pekerjaan AS name, COUNT(*)::int AS total
                        FROM tenders
                        WHERE kategori_pekerjaan IS NOT NULL
                        GROUP BY kategori_pekerjaan
                        ORDER BY total DESC, name
                        LIMIT 10
                    """)
                    by_status = await conn.fetch("""
                        SELECT status_tender AS name, COUNT(*)::int AS total
                        FROM tenders
                        WHERE status_tender IS NOT NULL
                        GROUP BY status_tender
                        ORDER BY total DESC, name
                    """)
                    by_province = await conn.fetch("""
                        SELECT provinsi AS name, COALESCE(SUM(total_tenders), 0)::bigint AS total
                        FROM lpse
                        WHERE provinsi IS NOT NULL
                        GROUP BY provinsi
                        ORDER BY total DESC, name
                    """)
                    recent = await conn.fetch(f"""
                        SELECT {TENDER_COLUMNS}
                        {TENDER_FROM}
                        ORDER BY t.created_at DESC, t.id DESC
                        LIMIT 5
                    """)
        except STORE_ERRORS as e:
            raise StoreQueryError(details={"cause": str(e), "operation": "fetch_stats"}) from e

        return {
            "total_tenders": int(total_tenders or 0),
            "total_lpse": int(total_lpse or 0),
            "avg_nilai_pagu": avg_budget,
            "by_category": [(row["name"], int(row["total"])) for row in by_category],
            "by_status": [(row["name"], int(row["total"])) for row in by_status],
            "by_province": [(row["name"], int(row["total"])) for row in by_province],
            "recent": list(recent),
        }

    async def fetch_lpse_list(self) -> List[asyncpg.Record]:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch("SELECT * FROM lpse ORDER BY nama_lpse ASC, id ASC")
        except STORE_ERRORS as e:
            raise StoreQueryError(details={"cause": str(e), "operation": "fetch_lpse_list"}) from e
