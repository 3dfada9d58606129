"""
Run metrics for synthetic load tests.

Provides:
- MetricSample: Per-record metric delta
- AggregateMetrics: Run totals with a commutative, associative merge
- MetricsAggregator: Thread-safe, freezable accumulator with latency percentiles
- MetricsMonitor: Terminal-record sink feeding an aggregator
- CounterRegistry: Named counters written by the execution engine
- Publishers: console / JSON / Prometheus text renderers

Usage:
    from synthload.metrics import MetricsAggregator, MetricsMonitor, publish

    aggregator = MetricsAggregator("pardo")
    monitor = MetricsMonitor(aggregator)
    monitor.observe(record, elapsed_nanos=1200)

    metrics = aggregator.freeze(wall_clock_seconds=2.0)
    publish(metrics, "pardo")
"""

from synthload.metrics.sample import AggregateMetrics, MetricSample
from synthload.metrics.collector import CounterRegistry, MetricsAggregator
from synthload.metrics.monitor import MetricsMonitor
from synthload.metrics.publisher import (
    ConsolePublisher,
    JsonPublisher,
    PrometheusPublisher,
    Publisher,
    format_report,
    make_publisher,
    prometheus_format,
    publish,
)

__all__ = [
    "AggregateMetrics",
    "MetricSample",
    "CounterRegistry",
    "MetricsAggregator",
    "MetricsMonitor",
    "ConsolePublisher",
    "JsonPublisher",
    "PrometheusPublisher",
    "Publisher",
    "format_report",
    "make_publisher",
    "prometheus_format",
    "publish",
]
