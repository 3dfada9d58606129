"""
SyntheticStep: a per-record stress operator.

For each input record the step:
1. spends the configured delay (sleep, CPU burn or both),
2. raises SyntheticFailure when the record's failure draw falls below
   ``failure_probability``,
3. otherwise emits ``output_records_per_input_record`` re-shaped records.

All draws are keyed by the step seed, the step label and the record's
position in the run (source index plus the output index taken at each
earlier step), so a record gets the same delay, failure decision and
outputs every time it is processed. Without a position the draws fall back
to a digest of the record content. A MetricSample is merged into the
step's own aggregator after every record, failed or not.
"""

from __future__ import annotations

import threading
import time
from typing import List, Optional, Sequence

from synthload.delay import Throttle, apply_delay
from synthload.exceptions import SyntheticFailure
from synthload.metrics.collector import MetricsAggregator
from synthload.metrics.sample import MetricSample
from synthload.models import Record, StepOptions
from synthload.shaping import Part, draw_size, record_digest, shaped_bytes, unit_draw


def record_identity(
    record: Record, position: Optional[Sequence[int]] = None
) -> Part:
    """Draw key for a record: its position when known, else its content digest."""
    if position is None:
        return record_digest(record)
    return "/".join(str(part) for part in position)


class SyntheticStep:
    """
    Configurable stress step.

    Attributes:
        options: Step parameters.
        label: Diagnostic label, e.g. "Step: 0".
        metrics: Aggregator receiving one sample per processed record.
    """

    def __init__(
        self,
        options: StepOptions,
        *,
        label: str = "Step: 0",
        metrics: Optional[MetricsAggregator] = None,
    ) -> None:
        self.options = options
        self.label = label
        self.metrics = metrics if metrics is not None else MetricsAggregator(label)
        self._throttle = (
            Throttle(options.max_records_per_second)
            if options.max_records_per_second is not None
            else None
        )
        self._bundle_count = 0
        self._bundle_lock = threading.Lock()

    def start_bundle(self) -> None:
        """Apply the per-bundle delay, if any."""
        if self.options.per_bundle_delay is None:
            return
        with self._bundle_lock:
            bundle_index = self._bundle_count
            self._bundle_count += 1
        apply_delay(
            self.options.per_bundle_delay,
            self.options.seed,
            "step-bundle",
            self.label,
            bundle_index,
        )

    def process(
        self, record: Record, position: Optional[Sequence[int]] = None
    ) -> List[Record]:
        """
        Process one record.

        Args:
            record: Input record.
            position: Where the record sits in the run: its source index
                followed by the output index taken at each earlier step.
                Draws are keyed by it; without it they fall back to a digest
                of the record content, so identical records share a draw.

        Returns:
            Zero or more output records.

        Raises:
            SyntheticFailure: When the record's failure draw triggers.
        """
        options = self.options
        started = time.perf_counter_ns()
        identity = record_identity(record, position)

        if self._throttle is not None:
            self._throttle.wait()

        if options.delay is not None:
            apply_delay(options.delay, options.seed, "step-delay", self.label, identity)

        if options.failure_probability > 0:
            draw = unit_draw(options.seed, "failure", self.label, identity)
            if draw < options.failure_probability:
                self.metrics.merge(
                    MetricSample(
                        elapsed_nanos=time.perf_counter_ns() - started,
                        error_count=1,
                    )
                )
                raise SyntheticFailure(
                    f"Injected failure in {self.label}",
                    step=self.label,
                    draw=draw,
                    probability=options.failure_probability,
                )

        outputs = [
            self._derive(record, identity, i)
            for i in range(options.output_records_per_input_record)
        ]

        self.metrics.merge(
            MetricSample(
                elapsed_nanos=time.perf_counter_ns() - started,
                record_count=1,
                byte_count=sum(output.size for output in outputs),
            )
        )
        return outputs

    def _derive(self, record: Record, identity: Part, output_index: int) -> Record:
        options = self.options
        seed = options.seed
        parts = (self.label, identity, output_index)

        key = record.key
        if (
            not options.preserves_input_key_distribution
            and options.key_size_bytes is not None
        ):
            key_len = draw_size(options.key_size_bytes, seed, "step-key-size", *parts)
            key = shaped_bytes(key_len, seed, "step-key", *parts)

        value_len = (
            draw_size(options.value_size_bytes, seed, "step-value-size", *parts)
            if options.value_size_bytes is not None
            else len(record.value)
        )
        value = shaped_bytes(value_len, seed, "step-value", *parts)
        return Record(key=key, value=value)
