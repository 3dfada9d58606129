"""
MetricSample and AggregateMetrics: the unit of metric reporting and its sum.

A MetricSample is emitted once per processed record (by a step or by the
terminal monitor). AggregateMetrics is the run-level total; merging is a
plain sum (wall clock takes the max), so partial aggregates combine in any
order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class MetricSample:
    """
    Per-record metric delta.

    Attributes:
        elapsed_nanos: Time spent on the record.
        record_count: Records accounted for (1 for a success, 0 on failure).
        error_count: Errors accounted for.
        byte_count: Bytes emitted.
    """

    elapsed_nanos: int = 0
    record_count: int = 0
    error_count: int = 0
    byte_count: int = 0

    def __post_init__(self) -> None:
        if self.elapsed_nanos < 0:
            raise ValueError("elapsed_nanos must be non-negative")


class AggregateMetrics(BaseModel):
    """
    Run-level totals.

    Attributes:
        total_records: Records observed.
        total_elapsed_nanos: Summed per-record latency.
        total_errors: Errors observed.
        total_bytes: Bytes observed.
        wall_clock_seconds: Duration of the run, set when the run is frozen.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    total_records: int = Field(default=0, ge=0)
    total_elapsed_nanos: int = Field(default=0, ge=0)
    total_errors: int = Field(default=0, ge=0)
    total_bytes: int = Field(default=0, ge=0)
    wall_clock_seconds: float = Field(default=0.0, ge=0)

    @classmethod
    def from_sample(cls, sample: MetricSample) -> "AggregateMetrics":
        return cls(
            total_records=sample.record_count,
            total_elapsed_nanos=sample.elapsed_nanos,
            total_errors=sample.error_count,
            total_bytes=sample.byte_count,
        )

    def merge(
        self, other: Union["AggregateMetrics", MetricSample]
    ) -> "AggregateMetrics":
        """Return the sum of two aggregates. Commutative and associative."""
        if isinstance(other, MetricSample):
            other = AggregateMetrics.from_sample(other)
        return AggregateMetrics(
            total_records=self.total_records + other.total_records,
            total_elapsed_nanos=self.total_elapsed_nanos + other.total_elapsed_nanos,
            total_errors=self.total_errors + other.total_errors,
            total_bytes=self.total_bytes + other.total_bytes,
            wall_clock_seconds=max(self.wall_clock_seconds, other.wall_clock_seconds),
        )

    def __add__(
        self, other: Union["AggregateMetrics", MetricSample]
    ) -> "AggregateMetrics":
        return self.merge(other)

    @property
    def records_per_second(self) -> Optional[float]:
        if self.wall_clock_seconds <= 0:
            return None
        return self.total_records / self.wall_clock_seconds

    @property
    def average_latency_ms(self) -> Optional[float]:
        if self.total_records == 0:
            return None
        return self.total_elapsed_nanos / self.total_records / 1_000_000

    @property
    def error_rate(self) -> float:
        attempts = self.total_records + self.total_errors
        if attempts == 0:
            return 0.0
        return self.total_errors / attempts

    def to_log_dict(self) -> Dict[str, Any]:
        """
        Serialize to a dict suitable for JSON logging.

        Returns a stable schema for log parsing:
        {"type": "synthload.run.v1", ...fields..., ...derived rates...}
        """
        data = self.model_dump(mode="json")
        data["type"] = "synthload.run.v1"
        data["records_per_second"] = self.records_per_second
        data["average_latency_ms"] = self.average_latency_ms
        data["error_rate"] = self.error_rate
        return data
