"""
Unit tests for the PostgreSQL tender repository.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from shared.errors import StoreQueryError
from service_tenders.app.filters import CanonicalFilterSet
from service_tenders.app.persistence import TenderRepository
from service_tenders.app.search import build_tender_where


class _AsyncContext:
    def __init__(self, value=None):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, *exc_info):
        return False


@pytest.fixture
def conn():
    """Mock asyncpg connection."""
    connection = MagicMock()
    connection.fetch = AsyncMock(return_value=[])
    connection.fetchrow = AsyncMock(return_value=None)
    connection.fetchval = AsyncMock(return_value=0)
    connection.transaction = MagicMock(return_value=_AsyncContext())
    return connection


@pytest.fixture
def repository(conn):
    """Repository with a mocked pool."""
    repo = TenderRepository("postgresql://localhost/tenders")
    repo.pool = MagicMock()
    repo.pool.acquire = MagicMock(return_value=_AsyncContext(conn))
    return repo


class TestTenderRepository:
    """Test cases for ``TenderRepository``."""

    @pytest.mark.asyncio
    async def test_page_shares_predicate_and_snapshot(self, repository, conn):
        conn.fetch.return_value = [{"id": 1}]
        conn.fetchval.return_value = 25
        where = build_tender_where(CanonicalFilterSet(search="jalan", fiscal_year=2024))

        rows, total = await repository.fetch_tender_page(where, 10, 20)

        assert rows == [{"id": 1}]
        assert total == 25
        conn.transaction.assert_called_once_with(isolation="repeatable_read", readonly=True)

        rows_sql, *rows_args = conn.fetch.call_args.args
        count_sql, *count_args = conn.fetchval.call_args.args
        assert where.sql in rows_sql
        assert where.sql in count_sql
        assert rows_args == ["%jalan%", 2024, 10, 20]
        assert count_args == ["%jalan%", 2024]
        assert "LIMIT $3 OFFSET $4" in rows_sql
        assert "ORDER BY t.created_at DESC" in rows_sql

    @pytest.mark.asyncio
    async def test_page_without_filters(self, repository, conn):
        await repository.fetch_tender_page(build_tender_where(CanonicalFilterSet()), 10, 0)

        rows_sql, *rows_args = conn.fetch.call_args.args
        assert "WHERE" not in rows_sql
        assert rows_args == [10, 0]

    @pytest.mark.asyncio
    async def test_detail_lookup_is_parameterized(self, repository, conn):
        assert await repository.fetch_tender("12345") is None
        sql, code = conn.fetchrow.call_args.args
        assert "t.kode_tender::text = $1" in sql
        assert code == "12345"

    @pytest.mark.asyncio
    async def test_store_errors_are_wrapped(self, repository, conn):
        conn.fetch.side_effect = asyncpg.PostgresError("relation does not exist")

        with pytest.raises(StoreQueryError) as exc_info:
            await repository.fetch_lpse_list()

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["operation"] == "fetch_lpse_list"
        assert "relation does not exist" in exc_info.value.details["cause"]

    @pytest.mark.asyncio
    async def test_stats_runs_in_one_transaction(self, repository, conn):
        conn.fetchval.side_effect = [25, 3, None]
        conn.fetch.side_effect = [
            [{"name": "Konstruksi", "total": 20}],
            [{"name": "Aktif", "total": 25}],
            [{"name": "Jawa Barat", "total": 12}],
            [],
        ]

        stats = await repository.fetch_stats()

        conn.transaction.assert_called_once()
        assert stats["total_tenders"] == 25
        assert stats["total_lpse"] == 3
        assert stats["avg_nilai_pagu"] is None
        assert stats["by_category"] == [("Konstruksi", 20)]
        assert stats["by_province"] == [("Jawa Barat", 12)]
        assert stats["recent"] == []

    @pytest.mark.asyncio
    async def test_health_check_failure(self, repository, conn):
        conn.fetchval.side_effect = OSError("connection refused")
        assert await repository.health_check() == "error"

    @pytest.mark.asyncio
    async def test_unreachable_store_at_start(self):
        repo = TenderRepository("postgresql://unreachable/tenders")

        with patch.object(asyncpg, "create_pool", AsyncMock(side_effect=OSError("refused"))):
            with pytest.raises(StoreQueryError) as exc_info:
                await repo.start()

        assert exc_info.value.details["operation"] == "connect"
        assert repo.pool is None

    @pytest.mark.asyncio
    async def test_stop_closes_pool(self, repository):
        pool = repository.pool
        pool.close = AsyncMock()

        await repository.stop()

        pool.close.assert_awaited_once()
        assert repository.pool is None
