"""
Publishers: render final run metrics to an external sink.

Publication is fire-and-forget: publish() logs a PublicationError and
returns False instead of raising, so a failed publication never turns a
successful run into a failed one.

Usage:
    from synthload.metrics.publisher import ConsolePublisher, publish

    publish(metrics, "pardo", ConsolePublisher())
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, TextIO, Union

from synthload.exceptions import PublicationError
from synthload.metrics.sample import AggregateMetrics

logger = logging.getLogger(__name__)

PUBLISHER_NAMES = ("console", "json", "prometheus")


class Publisher(Protocol):
    """Protocol for metrics sinks."""

    name: str

    def publish(
        self,
        metrics: AggregateMetrics,
        namespace: str,
        *,
        step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
        latency_ms: Optional[Mapping[str, Optional[float]]] = None,
    ) -> None:
        ...


def format_report(
    metrics: AggregateMetrics,
    namespace: str,
    *,
    step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
    latency_ms: Optional[Mapping[str, Optional[float]]] = None,
) -> str:
    """
    Format run metrics as human-readable text.

    Args:
        metrics: Frozen run totals.
        namespace: Metrics namespace (printed as the header).
        step_metrics: Optional per-step totals keyed by step label.
        latency_ms: Optional p50/p95/p99 per-record latency.

    Returns:
        Formatted string suitable for printing.
    """
    lines = []

    lines.append("=" * 60)
    lines.append(f"NAMESPACE: {namespace}")
    lines.append("=" * 60)
    lines.append(f"Total records: {metrics.total_records}")
    lines.append(f"Total bytes: {metrics.total_bytes}")
    lines.append(f"Total errors: {metrics.total_errors}")
    lines.append(f"Total time (millis): {metrics.wall_clock_seconds * 1000:.0f}")
    lines.append("")

    lines.append("--- Throughput ---")
    lines.append(f"  Records/sec: {_fmt(metrics.records_per_second)}")
    lines.append(f"  Error rate: {metrics.error_rate:.1%}")

    lines.append("")
    lines.append("--- Latency ---")
    lines.append(f"  Average: {_fmt(metrics.average_latency_ms, 3)}ms")
    if latency_ms:
        lines.append(
            f"  p50={_fmt(latency_ms.get('p50'), 3)}ms "
            f"p95={_fmt(latency_ms.get('p95'), 3)}ms "
            f"p99={_fmt(latency_ms.get('p99'), 3)}ms"
        )

    if step_metrics:
        lines.append("")
        lines.append("--- Steps ---")
        for label, totals in step_metrics.items():
            lines.append(
                f"  {label}: records={totals.total_records} "
                f"errors={totals.total_errors} "
                f"avg={_fmt(totals.average_latency_ms, 3)}ms"
            )

    lines.append("")
    return "\n".join(lines)


def _fmt(val: Optional[float], decimals: int = 1) -> str:
    """Format a value, handling None."""
    if val is None:
        return "N/A"
    return f"{val:.{decimals}f}"


class _StreamPublisher:
    """Base for publishers writing text to a stream or a file path."""

    name = "stream"

    def __init__(self, target: Union[TextIO, str, Path, None] = None) -> None:
        self._target = target

    def _write(self, text: str) -> None:
        if self._target is None:
            sys.stdout.write(text)
            sys.stdout.flush()
        elif isinstance(self._target, (str, Path)):
            with open(self._target, "a", encoding="utf-8") as handle:
                handle.write(text)
        else:
            self._target.write(text)
            self._target.flush()


class ConsolePublisher(_StreamPublisher):
    """Prints the human-readable summary (stdout by default)."""

    name = "console"

    def publish(
        self,
        metrics: AggregateMetrics,
        namespace: str,
        *,
        step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
        latency_ms: Optional[Mapping[str, Optional[float]]] = None,
    ) -> None:
        self._write(
            format_report(
                metrics, namespace, step_metrics=step_metrics, latency_ms=latency_ms
            )
        )


class JsonPublisher(_StreamPublisher):
    """Writes one JSON line per run (schema ``synthload.run.v1``)."""

    name = "json"

    def publish(
        self,
        metrics: AggregateMetrics,
        namespace: str,
        *,
        step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
        latency_ms: Optional[Mapping[str, Optional[float]]] = None,
    ) -> None:
        data = metrics.to_log_dict()
        data["namespace"] = namespace
        if latency_ms:
            data["latency_ms"] = dict(latency_ms)
        if step_metrics:
            data["steps"] = {
                label: totals.to_log_dict() for label, totals in step_metrics.items()
            }
        self._write(json.dumps(data, sort_keys=True) + "\n")


class PrometheusPublisher(_StreamPublisher):
    """Writes metrics in Prometheus text exposition format."""

    name = "prometheus"

    def publish(
        self,
        metrics: AggregateMetrics,
        namespace: str,
        *,
        step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
        latency_ms: Optional[Mapping[str, Optional[float]]] = None,
    ) -> None:
        self._write(prometheus_format(metrics, namespace, step_metrics=step_metrics))


def _metric_prefix(namespace: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in namespace.lower())
    return f"synthload_{cleaned}" if cleaned else "synthload"


def prometheus_format(
    metrics: AggregateMetrics,
    namespace: str,
    *,
    step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
) -> str:
    """
    Export run totals in Prometheus text exposition format.

    Returns:
        String suitable for a textfile collector.
    """
    prefix = _metric_prefix(namespace)
    lines = []

    for suffix, kind, help_text, value in [
        ("records_total", "counter", "Terminal records observed", metrics.total_records),
        ("errors_total", "counter", "Records that failed", metrics.total_errors),
        ("bytes_total", "counter", "Bytes observed at the sink", metrics.total_bytes),
        (
            "elapsed_nanoseconds_total",
            "counter",
            "Summed per-record latency",
            metrics.total_elapsed_nanos,
        ),
        ("wall_clock_seconds", "gauge", "Run duration", metrics.wall_clock_seconds),
    ]:
        name = f"{prefix}_{suffix}"
        lines.append(f"# HELP {name} {help_text}")
        lines.append(f"# TYPE {name} {kind}")
        lines.append(f"{name} {value}")
        lines.append("")

    if step_metrics:
        name = f"{prefix}_step_records_total"
        lines.append(f"# HELP {name} Records processed per step")
        lines.append(f"# TYPE {name} counter")
        for label, totals in step_metrics.items():
            lines.append(f'{name}{{step="{label}"}} {totals.total_records}')
        lines.append("")
        name = f"{prefix}_step_errors_total"
        lines.append(f"# HELP {name} Injected failures per step")
        lines.append(f"# TYPE {name} counter")
        for label, totals in step_metrics.items():
            lines.append(f'{name}{{step="{label}"}} {totals.total_errors}')
        lines.append("")

    return "\n".join(lines)


def make_publisher(
    name: str, target: Union[TextIO, str, Path, None] = None
) -> Publisher:
    """Build a publisher by name ("console", "json" or "prometheus")."""
    publishers: Dict[str, type] = {
        "console": ConsolePublisher,
        "json": JsonPublisher,
        "prometheus": PrometheusPublisher,
    }
    try:
        return publishers[name](target)
    except KeyError:
        raise ValueError(
            f"Unknown publisher '{name}'. Choose from: {', '.join(PUBLISHER_NAMES)}"
        ) from None


def publish(
    metrics: AggregateMetrics,
    namespace: str,
    publisher: Optional[Publisher] = None,
    *,
    step_metrics: Optional[Mapping[str, AggregateMetrics]] = None,
    latency_ms: Optional[Mapping[str, Optional[float]]] = None,
) -> bool:
    """
    Publish run metrics without escalating failures.

    Args:
        metrics: Frozen run totals.
        namespace: Metrics namespace.
        publisher: Sink to publish to (console when None).
        step_metrics: Optional per-step totals.
        latency_ms: Optional latency percentiles.

    Returns:
        True if the publisher succeeded, False if it raised.
    """
    publisher = publisher if publisher is not None else ConsolePublisher()
    try:
        publisher.publish(
            metrics, namespace, step_metrics=step_metrics, latency_ms=latency_ms
        )
    except Exception as exc:
        error = PublicationError(
            f"Failed to publish metrics for '{namespace}': {exc}",
            publisher=getattr(publisher, "name", type(publisher).__name__),
            details={"namespace": namespace},
        )
        logger.warning("%s", error.message, extra={"error": error.to_dict()})
        return False
    logger.info(
        "Published metrics for %s via %s",
        namespace,
        getattr(publisher, "name", type(publisher).__name__),
    )
    return True
