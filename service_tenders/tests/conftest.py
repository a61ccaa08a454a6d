"""
Shared fixtures for tender service tests.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import fakeredis
import fakeredis.aioredis
import pytest

from shared.config import get_config
from service_tenders.app.caching import RedisCacheStore
from service_tenders.app.monitoring import RequestMonitor


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_lpse(lpse_id: int = 1, name: str = "LPSE Kota Bandung", province: str = "Jawa Barat") -> Dict[str, Any]:
    return {"id": lpse_id, "nama_lpse": name, "provinsi": province, "total_tenders": 10}


def make_tender(index: int, lpse: Optional[Dict[str, Any]] = None, **overrides) -> Dict[str, Any]:
    lpse = lpse or make_lpse()
    tender = {
        "id": index,
        "kode_tender": str(10000 + index),
        "kode_rup": str(50000 + index),
        "nama_tender": f"Pembangunan Jalan Tol Seksi {index}",
        "kategori_pekerjaan": "Pekerjaan Konstruksi",
        "status_tender": "Aktif",
        "tahap_saat_ini": "Pengumuman",
        "nilai_pagu": Decimal("1500000000.50"),
        "nilai_hps": Decimal("1400000000.00"),
        "tahun_anggaran": 2024,
        "url_detail": f"https://lpse.example.go.id/tender/{10000 + index}",
        "lpse_id": lpse["id"],
        "created_at": BASE_TIME + timedelta(hours=index),
        "updated_at": BASE_TIME + timedelta(hours=index),
        "lpse": lpse,
    }
    tender.update(overrides)
    return tender


class FakeTenderRepository:
    """In-memory stand-in for ``TenderRepository``.

    Ignores SQL predicates but records every call, so tests can assert how
    many times the store was hit and with which WHERE clause.
    """

    def __init__(self, tenders: Optional[List[Dict[str, Any]]] = None, lpse: Optional[List[Dict[str, Any]]] = None):
        self.tenders = tenders if tenders is not None else []
        self.lpse = lpse if lpse is not None else [make_lpse()]
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.started = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _newest_first(self) -> List[Dict[str, Any]]:
        return sorted(self.tenders, key=lambda tender: tender["created_at"], reverse=True)

    def _record(self, *call) -> None:
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def health_check(self) -> str:
        return "ok"

    async def fetch_tender_page(self, where, limit, offset):
        self._record("page", where, limit, offset)
        rows = self._newest_first()
        return rows[offset:offset + limit], len(rows)

    async def fetch_tender(self, code):
        self._record("detail", code)
        for tender in self.tenders:
            if tender["kode_tender"] == code:
                return dict(tender, tender_details={"persyaratan_umum": "  ", "dokumen_pengadaan": ["rks.pdf"]})
        return None

    async def fetch_suggestions(self, where, limit):
        self._record("suggestions", where, limit)
        return [
            {
                "id": tender["id"],
                "kode_tender": tender["kode_tender"],
                "nama_tender": tender["nama_tender"],
                "kategori_pekerjaan": tender["kategori_pekerjaan"],
                "status_tender": tender["status_tender"],
                "lpse_nama": tender["lpse"]["nama_lpse"],
                "nilai_pagu": tender["nilai_pagu"],
            }
            for tender in self._newest_first()[:limit]
        ]

    async def fetch_stats(self):
        self._record("stats")
        return {
            "total_tenders": len(self.tenders),
            "total_lpse": len(self.lpse),
            "avg_nilai_pagu": Decimal("1500000000.50") if self.tenders else None,
            "by_category": [("Pekerjaan Konstruksi", len(self.tenders))],
            "by_status": [("Aktif", len(self.tenders))],
            "by_province": [("Jawa Barat", 10), (None, 3)],
            "recent": self._newest_first()[:5],
        }

    async def fetch_lpse_list(self):
        self._record("lpse")
        return sorted(self.lpse, key=lambda lpse: lpse["nama_lpse"])


@pytest.fixture
def tender_config():
    """Local configuration with caching left to the injected store."""
    return get_config(
        "tenders",
        8080,
        env="local",
        redis_url=None,
        cache_enabled=True,
        cache_warming=True,
        monitoring_log_interval_seconds=3600,
    )


@pytest.fixture
def fake_repository():
    """Repository holding 25 tenders, one per hour."""
    return FakeTenderRepository([make_tender(index) for index in range(1, 26)])


@pytest.fixture
def redis_server():
    """Shared in-memory Redis server."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_store(redis_server):
    """Redis cache store backed by fakeredis."""
    return RedisCacheStore(
        "redis://fake:6379/0",
        client_factory=lambda: fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True),
    )


@pytest.fixture
def sync_redis(redis_server):
    """Synchronous view of the same fake server, for inspecting cache contents."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture(autouse=True)
def reset_monitor_cooldown():
    """The monitor log cooldown is process-wide."""
    RequestMonitor.reset_log_cooldown()
    yield
    RequestMonitor.reset_log_cooldown()
