"""
Unit tests for the request monitor.
"""

import json
import threading
from unittest.mock import MagicMock

import pytest

from shared.metrics import MetricsCollector
from service_tenders.app.monitoring import RequestMonitor, percentile


class TestPercentile:
    """Test cases for ``percentile``."""

    def test_median_of_five(self):
        assert percentile([10, 20, 30, 40, 50], 50) == 30

    def test_high_percentiles_index_down(self):
        samples = [10, 20, 30, 40, 50]
        assert percentile(samples, 95) == 40
        assert percentile(samples, 99) == 40
        assert percentile(samples, 100) == 50

    def test_unsorted_input(self):
        assert percentile([50, 10, 40, 20, 30], 50) == 30

    def test_empty(self):
        assert percentile([], 50) == 0.0


class TestRequestMonitor:
    """Test cases for ``RequestMonitor``."""

    @pytest.fixture
    def monitor(self):
        return RequestMonitor(sample_size=500, log_interval_seconds=60)

    def test_timing_summary(self, monitor):
        for value in [10, 20, 30, 40, 50]:
            monitor.record_timing("api.tenders", value)

        timing = monitor.snapshot()["timings"]["api.tenders"]

        assert timing["count"] == 5
        assert timing["avg"] == 30
        assert timing["min"] == 10
        assert timing["max"] == 50
        assert timing["p50"] == 30

    def test_sample_window_evicts_oldest(self):
        monitor = RequestMonitor(sample_size=3)
        for value in [1000, 1, 2, 3]:
            monitor.record_timing("api.stats", value)

        timing = monitor.snapshot()["timings"]["api.stats"]

        assert timing["count"] == 4
        assert timing["max"] == 1000
        assert timing["p99"] == 2

    def test_hit_rate(self, monitor):
        monitor.record_cache_hit("api.tenders")
        monitor.record_cache_hit("api.tenders")
        monitor.record_cache_hit("api.tenders")
        monitor.record_cache_miss("api.tenders")
        monitor.record_cache_miss("api.lpse")

        cache = monitor.snapshot()["cache"]

        assert cache["api.tenders"] == {"hits": 3, "misses": 1, "hit_rate": 0.75}
        assert cache["api.lpse"]["hit_rate"] == 0.0

    def test_query_and_error_counts(self, monitor):
        monitor.record_db_query("api.stats", 7)
        monitor.record_db_query("api.stats")
        monitor.record_error("api.stats")

        snapshot = monitor.snapshot()

        assert snapshot["db_queries"] == {"api.stats": 8}
        assert snapshot["errors"] == {"api.stats": 1}
        assert monitor.db_queries("api.stats") == 8

    def test_memory_reported(self, monitor):
        memory = monitor.snapshot()["memory"]
        assert memory["rss"] > 0
        assert memory["vms"] > 0

    def test_disabled_monitor_records_nothing(self):
        monitor = RequestMonitor(enabled=False)
        monitor.record_timing("api.tenders", 5)
        monitor.record_cache_hit("api.tenders")
        monitor.record_db_query("api.tenders", 2)
        monitor.record_error("api.tenders")

        snapshot = monitor.snapshot()

        assert snapshot["timings"] == {}
        assert snapshot["cache"] == {}
        assert snapshot["db_queries"] == {}
        assert monitor.log_if_needed("api.tenders") is False

    def test_concurrent_records_are_not_lost(self, monitor):
        def worker():
            for _ in range(1000):
                monitor.record_db_query("api.tenders")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert monitor.db_queries("api.tenders") == 4000

    def test_log_cooldown_is_process_wide(self):
        first = RequestMonitor(log_interval_seconds=60)
        second = RequestMonitor(log_interval_seconds=60)
        first.logger = MagicMock()
        second.logger = MagicMock()

        assert first.log_if_needed("api.tenders") is True
        assert first.log_if_needed("api.tenders") is False
        assert second.log_if_needed("api.stats") is False
        first.logger.info.assert_called_once()
        second.logger.info.assert_not_called()

    def test_zero_interval_always_logs(self):
        monitor = RequestMonitor(log_interval_seconds=0)
        monitor.logger = MagicMock()

        assert monitor.log_if_needed("a") is True
        assert monitor.log_if_needed("b") is True

    def test_log_file_appends_snapshot(self, tmp_path):
        log_file = tmp_path / "monitor.log"
        monitor = RequestMonitor(log_file=str(log_file))
        monitor.logger = MagicMock()
        monitor.record_cache_hit("api.lpse")

        monitor.log_if_needed("api.lpse")

        line = json.loads(log_file.read_text().strip())
        assert line["context"] == "api.lpse"
        assert line["cache"]["api.lpse"]["hits"] == 1

    def test_mirrors_to_prometheus(self):
        metrics = MetricsCollector("tenders")
        monitor = RequestMonitor(metrics=metrics)

        monitor.record_cache_hit("api.tenders")
        monitor.record_cache_miss("api.tenders")
        monitor.record_db_query("api.tenders", 2)
        monitor.record_error("api.tenders")
        monitor.record_timing("api.tenders", 12.5)

        registry = metrics.registry
        labels = {"route": "api.tenders"}
        assert registry.get_sample_value("tender_cache_hits_total", labels) == 1
        assert registry.get_sample_value("tender_cache_misses_total", labels) == 1
        assert registry.get_sample_value("tender_db_queries_total", labels) == 2
        assert registry.get_sample_value("tender_route_errors_total", labels) == 1
        assert registry.get_sample_value("tender_route_duration_seconds_count", labels) == 1
