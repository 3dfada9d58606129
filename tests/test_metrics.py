"""Tests for metric samples, aggregation and the terminal monitor."""

import itertools
import threading

import pytest

from synthload.exceptions import AggregationError
from synthload.metrics import (
    AggregateMetrics,
    CounterRegistry,
    MetricsAggregator,
    MetricsMonitor,
    MetricSample,
)
from synthload.models import Record


class TestMetricSample:
    def test_defaults_are_zero(self):
        sample = MetricSample()
        assert (sample.elapsed_nanos, sample.record_count, sample.error_count) == (0, 0, 0)

    def test_negative_elapsed_rejected(self):
        with pytest.raises(ValueError):
            MetricSample(elapsed_nanos=-1)


class TestAggregateMetrics:
    def test_merge_sums_totals(self):
        a = AggregateMetrics(total_records=2, total_errors=1, total_bytes=10)
        b = AggregateMetrics(total_records=3, total_bytes=5, total_elapsed_nanos=7)
        merged = a + b
        assert merged.total_records == 5
        assert merged.total_errors == 1
        assert merged.total_bytes == 15
        assert merged.total_elapsed_nanos == 7

    def test_merge_is_commutative_and_associative(self):
        parts = [
            AggregateMetrics(total_records=1, total_bytes=3, wall_clock_seconds=1.0),
            AggregateMetrics(total_records=4, total_errors=2, wall_clock_seconds=2.0),
            AggregateMetrics(total_elapsed_nanos=99, total_bytes=1),
        ]
        results = set()
        for ordering in itertools.permutations(parts):
            total = AggregateMetrics()
            for part in ordering:
                total = total.merge(part)
            results.add(total)
        assert len(results) == 1
        assert (parts[0] + parts[1]) + parts[2] == parts[0] + (parts[1] + parts[2])

    def test_merge_accepts_sample(self):
        total = AggregateMetrics().merge(MetricSample(record_count=1, byte_count=4))
        assert total.total_records == 1
        assert total.total_bytes == 4

    def test_derived_rates(self):
        metrics = AggregateMetrics(
            total_records=100,
            total_errors=25,
            total_elapsed_nanos=200_000_000,
            wall_clock_seconds=2.0,
        )
        assert metrics.records_per_second == 50
        assert metrics.average_latency_ms == 2.0
        assert metrics.error_rate == 0.2

    def test_rates_undefined_without_data(self):
        metrics = AggregateMetrics()
        assert metrics.records_per_second is None
        assert metrics.average_latency_ms is None
        assert metrics.error_rate == 0.0

    def test_to_log_dict(self):
        data = AggregateMetrics(total_records=1, wall_clock_seconds=1.0).to_log_dict()
        assert data["type"] == "synthload.run.v1"
        assert data["total_records"] == 1
        assert data["records_per_second"] == 1.0


class TestMetricsAggregator:
    def test_merge_accumulates(self):
        aggregator = MetricsAggregator("test")
        aggregator.merge_all(
            [
                MetricSample(elapsed_nanos=10, record_count=1, byte_count=3),
                MetricSample(elapsed_nanos=5, error_count=1),
            ]
        )
        totals = aggregator.totals()
        assert totals.total_records == 1
        assert totals.total_errors == 1
        assert totals.total_bytes == 3
        assert totals.total_elapsed_nanos == 15

    def test_freeze_rejects_further_samples(self):
        aggregator = MetricsAggregator("test")
        aggregator.merge(MetricSample(record_count=1))
        aggregator.freeze(1.0)
        assert aggregator.frozen
        with pytest.raises(AggregationError) as info:
            aggregator.merge(MetricSample(record_count=1))
        assert info.value.code == "metrics_frozen"
        assert info.value.namespace == "test"
        assert aggregator.totals().total_records == 1

    def test_freeze_is_idempotent(self):
        aggregator = MetricsAggregator("test")
        first = aggregator.freeze(1.5)
        second = aggregator.freeze(9.0)
        assert first is second
        assert second.wall_clock_seconds == 1.5

    def test_concurrent_merges(self):
        aggregator = MetricsAggregator("test")

        def worker():
            for _ in range(1000):
                aggregator.merge(MetricSample(elapsed_nanos=1, record_count=1, byte_count=2))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        totals = aggregator.totals()
        assert totals.total_records == 8000
        assert totals.total_bytes == 16000
        assert totals.total_elapsed_nanos == 8000

    def test_percentiles_empty(self):
        assert MetricsAggregator().percentiles() == {"p50": None, "p95": None, "p99": None}

    def test_percentiles_track_latency(self):
        aggregator = MetricsAggregator()
        for _ in range(100):
            aggregator.merge(MetricSample(elapsed_nanos=1_000_000, record_count=1))
        percentiles = aggregator.percentiles()
        assert 0.5 <= percentiles["p50"] <= 1.0
        assert 0.5 <= percentiles["p99"] <= 1.0

    def test_errors_do_not_feed_latency(self):
        aggregator = MetricsAggregator()
        aggregator.merge(MetricSample(elapsed_nanos=5_000_000, error_count=1))
        assert aggregator.percentiles()["p50"] is None

    def test_snapshot(self):
        aggregator = MetricsAggregator("snap")
        aggregator.merge(MetricSample(record_count=1))
        snapshot = aggregator.snapshot()
        assert snapshot["namespace"] == "snap"
        assert snapshot["frozen"] is False
        assert snapshot["totals"]["total_records"] == 1
        assert snapshot["histogram"]["count"] == 1


class TestMetricsMonitor:
    def test_observe_counts_record_and_bytes(self):
        aggregator = MetricsAggregator("pardo")
        monitor = MetricsMonitor(aggregator)
        sample = monitor.observe(Record(key=b"abc", value=b"12345"), elapsed_nanos=40)
        assert sample == MetricSample(elapsed_nanos=40, record_count=1, byte_count=8)
        assert aggregator.totals().total_bytes == 8
        assert monitor.namespace == "pardo"

    def test_observe_error(self):
        aggregator = MetricsAggregator()
        MetricsMonitor(aggregator).observe_error(10)
        totals = aggregator.totals()
        assert totals.total_errors == 1
        assert totals.total_records == 0


class TestCounterRegistry:
    def test_inc_and_get(self):
        counters = CounterRegistry()
        counters.inc("records_read")
        counters.inc("records_read", 4)
        assert counters.get("records_read") == 5
        assert counters.get("missing") == 0

    def test_snapshot(self):
        counters = CounterRegistry()
        counters.inc("a")
        counters.inc("b", 2)
        assert counters.snapshot() == {"a": 1, "b": 2}

    def test_concurrent_increments(self):
        counters = CounterRegistry()

        def worker():
            for _ in range(500):
                counters.inc("hits")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert counters.get("hits") == 2000
