"""
MetricsAggregator: thread-safe accumulation of MetricSamples into run totals.

Workers merge samples concurrently under one lock; the merge is a sum, so
the order samples arrive in does not matter. Once frozen, the aggregator
rejects further samples with AggregationError.

Also provides CounterRegistry, the named-counter facility used by the engine.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Dict, Iterable, Optional, Tuple

from synthload.exceptions import AggregationError
from synthload.metrics.sample import AggregateMetrics, MetricSample

LATENCY_BUCKETS_MS: Tuple[float, ...] = (
    0.01,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    25.0,
    50.0,
    100.0,
    250.0,
    500.0,
    1000.0,
    2500.0,
    10000.0,
)


class _HistogramValue:
    """Thread-safe histogram with configurable buckets."""

    def __init__(self, buckets: Tuple[float, ...]) -> None:
        self._buckets = tuple(sorted(buckets)) + (float("inf"),)
        self._counts = [0] * len(self._buckets)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            self._sum += value
            self._count += 1
            for i, bound in enumerate(self._buckets):
                if value <= bound:
                    self._counts[i] += 1
                    break

    def get(self) -> Dict[str, Any]:
        with self._lock:
            bucket_data = []
            cumulative = 0
            for i, bound in enumerate(self._buckets):
                cumulative += self._counts[i]
                if bound != float("inf"):
                    bucket_data.append((bound, cumulative))
            return {
                "buckets": bucket_data,
                "sum": self._sum,
                "count": self._count,
            }

    def percentile(self, p: float) -> Optional[float]:
        with self._lock:
            if self._count == 0:
                return None

            target = self._count * (p / 100.0)
            cumulative = 0

            for i, bound in enumerate(self._buckets):
                cumulative += self._counts[i]
                if cumulative >= target:
                    if i == 0:
                        return bound
                    if bound == float("inf"):
                        return self._buckets[i - 1]
                    prev_cumulative = cumulative - self._counts[i]
                    prev_bound = self._buckets[i - 1]
                    ratio = (target - prev_cumulative) / self._counts[i]
                    return prev_bound + ratio * (bound - prev_bound)

            return self._buckets[-2]


class _CounterValue:
    """Thread-safe counter."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def get(self) -> int:
        with self._lock:
            return self._value


class CounterRegistry:
    """
    Named integer counters, safe under concurrent increments.

    Example:
        counters = CounterRegistry()
        counters.inc("records_read")
        counters.snapshot()  # {"records_read": 1}
    """

    def __init__(self) -> None:
        self._counters: Dict[str, _CounterValue] = defaultdict(_CounterValue)
        self._lock = threading.Lock()

    def inc(self, name: str, amount: int = 1) -> None:
        with self._lock:
            counter = self._counters[name]
        counter.inc(amount)

    def get(self, name: str) -> int:
        with self._lock:
            counter = self._counters.get(name)
        return counter.get() if counter is not None else 0

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {name: counter.get() for name, counter in self._counters.items()}


class MetricsAggregator:
    """
    Accumulates MetricSamples into AggregateMetrics.

    Thread-safe. Totals live in plain integers guarded by one lock; latency
    per record also feeds a bucketed histogram for p50/p95/p99.

    Lifecycle: merge() any number of times from any thread, then freeze()
    exactly once when the run completes. merge() after freeze() raises
    AggregationError.

    Example:
        aggregator = MetricsAggregator("pardo")
        aggregator.merge(MetricSample(elapsed_nanos=1000, record_count=1))
        final = aggregator.freeze(wall_clock_seconds=1.5)
    """

    def __init__(self, namespace: str = "synthload") -> None:
        self.namespace = namespace
        self._records = 0
        self._elapsed_nanos = 0
        self._errors = 0
        self._bytes = 0
        self._latency_ms = _HistogramValue(LATENCY_BUCKETS_MS)
        self._frozen: Optional[AggregateMetrics] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        with self._lock:
            return self._frozen is not None

    def merge(self, sample: MetricSample) -> None:
        """
        Add one sample to the running totals.

        Raises:
            AggregationError: If the aggregator has been frozen.
        """
        with self._lock:
            if self._frozen is not None:
                raise AggregationError(
                    f"metrics for '{self.namespace}' are frozen; sample rejected",
                    namespace=self.namespace,
                    code="metrics_frozen",
                )
            self._records += sample.record_count
            self._elapsed_nanos += sample.elapsed_nanos
            self._errors += sample.error_count
            self._bytes += sample.byte_count
            if sample.record_count:
                self._latency_ms.observe(sample.elapsed_nanos / 1_000_000)

    def merge_all(self, samples: Iterable[MetricSample]) -> None:
        for sample in samples:
            self.merge(sample)

    def totals(self, wall_clock_seconds: float = 0.0) -> AggregateMetrics:
        """Current totals. Returns the frozen totals once frozen."""
        with self._lock:
            if self._frozen is not None:
                return self._frozen
            return AggregateMetrics(
                total_records=self._records,
                total_elapsed_nanos=self._elapsed_nanos,
                total_errors=self._errors,
                total_bytes=self._bytes,
                wall_clock_seconds=wall_clock_seconds,
            )

    def freeze(self, wall_clock_seconds: Optional[float] = None) -> AggregateMetrics:
        """
        Finalize the totals. Idempotent: a second call returns the same totals.

        Args:
            wall_clock_seconds: Duration of the run.

        Returns:
            The frozen AggregateMetrics.
        """
        with self._lock:
            if self._frozen is None:
                self._frozen = AggregateMetrics(
                    total_records=self._records,
                    total_elapsed_nanos=self._elapsed_nanos,
                    total_errors=self._errors,
                    total_bytes=self._bytes,
                    wall_clock_seconds=wall_clock_seconds or 0.0,
                )
            return self._frozen

    def percentiles(self) -> Dict[str, Optional[float]]:
        """p50/p95/p99 of per-record latency in milliseconds."""
        return {
            "p50": self._latency_ms.percentile(50),
            "p95": self._latency_ms.percentile(95),
            "p99": self._latency_ms.percentile(99),
        }

    def snapshot(self) -> Dict[str, Any]:
        """
        Get complete metrics snapshot.

        Returns:
            Dict containing:
            - namespace: Aggregator namespace
            - frozen: Whether totals are final
            - totals: AggregateMetrics as a log dict
            - latency_ms: p50/p95/p99 per-record latency
            - histogram: Raw latency histogram data
        """
        return {
            "namespace": self.namespace,
            "frozen": self.frozen,
            "totals": self.totals().to_log_dict(),
            "latency_ms": self.percentiles(),
            "histogram": self._latency_ms.get(),
        }
