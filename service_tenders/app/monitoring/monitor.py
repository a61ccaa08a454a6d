"""
In-process request monitor for the tender routes.

Keeps per-route timing windows, cache hit/miss counts, store query counts and
error counts. Every record is mirrored to the service's Prometheus collector;
``snapshot`` adds percentiles and process memory that Prometheus does not
carry, and ``log_if_needed`` writes that snapshot to the log at most once per
interval for the whole process.
"""

from __future__ import annotations

import json
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional, Sequence, TYPE_CHECKING

import psutil

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


DEFAULT_SAMPLE_SIZE = 500
DEFAULT_LOG_INTERVAL_SECONDS = 60.0


def percentile(samples: Sequence[float], p: float) -> float:
    """Nearest-rank-below percentile: ``sorted[floor(p/100 * (n-1))]``."""
    if not samples:
        return 0.0
    ordered = sorted(samples)
    return ordered[math.floor((p / 100) * (len(ordered) - 1))]


@dataclass
class TimingEntry:
    sample_size: int = DEFAULT_SAMPLE_SIZE
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = math.inf
    max_ms: float = 0.0
    samples: Deque[float] = field(init=False)

    def __post_init__(self):
        self.samples = deque(maxlen=self.sample_size)

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        self.samples.append(duration_ms)

    def summary(self) -> Dict[str, float]:
        samples = list(self.samples)
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "min": self.min_ms if self.count else 0.0,
            "max": self.max_ms,
            "p50": percentile(samples, 50),
            "p95": percentile(samples, 95),
            "p99": percentile(samples, 99),
        }


@dataclass
class CacheStat:
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class RequestMonitor:
    """Thread-safe per-route request statistics."""

    # Shared by every monitor in the process
    _last_log_at = 0.0
    _log_lock = threading.Lock()

    def __init__(
        self,
        *,
        enabled: bool = True,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        log_interval_seconds: float = DEFAULT_LOG_INTERVAL_SECONDS,
        log_file: Optional[str] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.enabled = enabled
        self.sample_size = max(1, int(sample_size))
        self.log_interval_seconds = log_interval_seconds
        self.log_file = log_file
        self.metrics = metrics
        self.logger = get_logger("tenders.monitor")

        self._lock = threading.Lock()
        self._timings: Dict[str, TimingEntry] = {}
        self._cache: Dict[str, CacheStat] = {}
        self._db_queries: Dict[str, int] = {}
        self._errors: Dict[str, int] = {}
        self._process = psutil.Process()

    @classmethod
    def from_config(cls, config: "BaseConfig", metrics: Optional["MetricsCollector"] = None) -> "RequestMonitor":
        return cls(
            enabled=config.monitoring_enabled,
            sample_size=config.monitoring_sample_size,
            log_interval_seconds=config.monitoring_log_interval_seconds,
            log_file=config.monitoring_log_file,
            metrics=metrics,
        )

    def record_timing(self, route: str, duration_ms: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            entry = self._timings.get(route)
            if entry is None:
                entry = self._timings[route] = TimingEntry(self.sample_size)
            entry.add(duration_ms)
        if self.metrics is not None:
            self.metrics.observe_histogram("tender_route_duration_seconds", duration_ms / 1000, route=route)

    def record_cache_hit(self, route: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._cache.setdefault(route, CacheStat()).hits += 1
        self._mirror("tender_cache_hits_total", route)

    def record_cache_miss(self, route: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._cache.setdefault(route, CacheStat()).misses += 1
        self._mirror("tender_cache_misses_total", route)

    def record_db_query(self, route: str, count: int = 1) -> None:
        if not self.enabled or count <= 0:
            return
        with self._lock:
            self._db_queries[route] = self._db_queries.get(route, 0) + count
        self._mirror("tender_db_queries_total", route, count)

    def record_error(self, route: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._errors[route] = self._errors.get(route, 0) + 1
        self._mirror("tender_route_errors_total", route)

    def db_queries(self, route: str) -> int:
        with self._lock:
            return self._db_queries.get(route, 0)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            timings = {route: entry.summary() for route, entry in self._timings.items()}
            cache = {
                route: {"hits": stat.hits, "misses": stat.misses, "hit_rate": stat.hit_rate}
                for route, stat in self._cache.items()
            }
            db_queries = dict(self._db_queries)
            errors = dict(self._errors)

        memory = self._process.memory_info()
        return {
            "timings": timings,
            "cache": cache,
            "db_queries": db_queries,
            "errors": errors,
            "memory": {"rss": memory.rss, "vms": memory.vms},
        }

    def log_if_needed(self, context: str) -> bool:
        """Log a snapshot unless one was logged within the interval. Returns True if logged."""
        if not self.enabled:
            return False

        now = time.monotonic()
        with RequestMonitor._log_lock:
            last = RequestMonitor._last_log_at
            if last and now - last < self.log_interval_seconds:
                return False
            RequestMonitor._last_log_at = now

        snapshot = self.snapshot()
        self.logger.info("Monitoring snapshot", context=context, snapshot=snapshot)
        if self.log_file:
            self._append_to_file(context, snapshot)
        return True

    def reset(self) -> None:
        with self._lock:
            self._timings.clear()
            self._cache.clear()
            self._db_queries.clear()
            self._errors.clear()

    @classmethod
    def reset_log_cooldown(cls) -> None:
        with cls._log_lock:
            cls._last_log_at = 0.0

    def _append_to_file(self, context: str, snapshot: Dict[str, Any]) -> None:
        line = json.dumps({"context": context, "timestamp": time.time(), **snapshot})
        try:
            with open(self.log_file, "a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            self.logger.warning("Failed to write monitoring log file", path=self.log_file, error=str(exc))

    def _mirror(self, metric_name: str, route: str, amount: int = 1) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, amount, route=route)
