from __future__ import annotations

from typing import TYPE_CHECKING

from synthload.metrics.collector import MetricsAggregator
from synthload.metrics.sample import MetricSample

if TYPE_CHECKING:
    from synthload.models import Record


class MetricsMonitor:
    """
    Terminal sink of the step chain.

    Called once per terminal record; turns it into a MetricSample and merges
    it into the shared aggregator.
    """

    def __init__(self, aggregator: MetricsAggregator) -> None:
        self.aggregator = aggregator

    @property
    def namespace(self) -> str:
        return self.aggregator.namespace

    def observe(self, record: Record, elapsed_nanos: int = 0) -> MetricSample:
        sample = MetricSample(
            elapsed_nanos=elapsed_nanos,
            record_count=1,
            byte_count=record.size,
        )
        self.aggregator.merge(sample)
        return sample

    def observe_error(self, elapsed_nanos: int = 0) -> MetricSample:
        """Account for a record that failed before reaching the sink."""
        sample = MetricSample(elapsed_nanos=elapsed_nanos, error_count=1)
        self.aggregator.merge(sample)
        return sample
