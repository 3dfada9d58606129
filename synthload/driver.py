"""
Driver: assembles Source → StepChain → MetricsMonitor, runs it and publishes.

State machine:
    configured → running → completed → published
                        ↘ failed

- configured → running: the chain is submitted to the engine.
- running → completed: the engine reports success; metrics are frozen.
- running → failed: the engine reports failure; nothing is published.
- completed → published: the publisher succeeded (invoked exactly once).
  A failed publication leaves the run completed and still successful.

Usage:
    from synthload.driver import Driver

    driver = Driver.from_json(
        '{"numRecords": 1000, "keySizeBytes": 8, "valueSizeBytes": 8}',
        '{"outputRecordsPerInputRecord": 2}',
        count=3,
    )
    report = driver.run()
    print(report.state, report.metrics.records_per_second)
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence, Union

from synthload import telemetry
from synthload.chain import StepChain
from synthload.config import RawOptions, parse_source_options, parse_step_options
from synthload.engine import Engine, EngineState, LocalEngine
from synthload.exceptions import SynthloadError
from synthload.metrics.collector import MetricsAggregator
from synthload.metrics.monitor import MetricsMonitor
from synthload.metrics.publisher import Publisher, publish
from synthload.models import RunReport, RunState, SourceOptions, StepOptions
from synthload.source import SyntheticSource

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "pardo"


class Driver:
    """
    One load-test run.

    Attributes:
        namespace: Metrics namespace.
        source: The synthetic source.
        chain: The step chain.
        aggregator: Terminal metrics accumulator.
        monitor: Terminal sink feeding the aggregator.
        engine: Execution engine.
        publisher: Metrics sink (console when None).
    """

    def __init__(
        self,
        source_options: SourceOptions,
        step_options: Union[StepOptions, Sequence[StepOptions]],
        *,
        count: Optional[int] = None,
        namespace: str = DEFAULT_NAMESPACE,
        engine: Optional[Engine] = None,
        publisher: Optional[Publisher] = None,
    ) -> None:
        self.namespace = namespace
        self.source = SyntheticSource(source_options)
        self.chain = StepChain.build(step_options, count)
        self.aggregator = MetricsAggregator(namespace)
        self.monitor = MetricsMonitor(self.aggregator)
        self.engine: Engine = engine if engine is not None else LocalEngine()
        self.publisher = publisher
        self._state = RunState.CONFIGURED
        self._lock = threading.Lock()

    @classmethod
    def from_json(
        cls,
        source_options: RawOptions,
        step_options: RawOptions,
        *,
        count: int = 1,
        namespace: str = DEFAULT_NAMESPACE,
        engine: Optional[Engine] = None,
        publisher: Optional[Publisher] = None,
    ) -> "Driver":
        """
        Build a driver from JSON option blobs.

        Raises:
            ConfigurationError: If either blob is malformed.
        """
        return cls(
            parse_source_options(source_options),
            parse_step_options(step_options),
            count=count,
            namespace=namespace,
            engine=engine,
            publisher=publisher,
        )

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    def _set_state(self, state: RunState) -> None:
        with self._lock:
            self._state = state
        logger.debug("Run %s is %s", self.namespace, state.value)

    def run(self) -> RunReport:
        """
        Execute the run, block until the engine finishes, then publish.

        Returns:
            RunReport with the terminal state.

        Raises:
            SynthloadError: If the run was already started.
        """
        with self._lock:
            if self._state is not RunState.CONFIGURED:
                raise SynthloadError(
                    f"Run '{self.namespace}' already started ({self._state.value})",
                    code="invalid_state",
                    details={"state": self._state.value},
                )
            self._state = RunState.RUNNING

        try:
            with telemetry.span(
                "synthload.run",
                namespace=self.namespace,
                records=len(self.source),
                steps=len(self.chain),
            ):
                result = self.engine.run(self.source, self.chain, self.monitor)
                engine_state = result.wait_until_finish()
        except Exception:
            self._set_state(RunState.FAILED)
            raise

        step_metrics = self.chain.freeze()
        counters = result.counters.snapshot()
        errors = result.errors

        if engine_state is not EngineState.DONE:
            self.aggregator.freeze(result.wall_clock_seconds)
            self._set_state(RunState.FAILED)
            logger.error(
                "Run %s failed (%s): %s",
                self.namespace,
                engine_state.value,
                result.failure,
            )
            return RunReport(
                namespace=self.namespace,
                state=RunState.FAILED,
                success=False,
                step_metrics=step_metrics,
                engine_errors=len(errors),
                counters=counters,
            )

        metrics = self.aggregator.freeze(result.wall_clock_seconds)
        self._set_state(RunState.COMPLETED)
        logger.info(
            "Run %s completed: %d records, %d errors in %.3fs",
            self.namespace,
            metrics.total_records,
            metrics.total_errors,
            metrics.wall_clock_seconds,
        )

        published = publish(
            metrics,
            self.namespace,
            self.publisher,
            step_metrics=step_metrics,
            latency_ms=self.aggregator.percentiles(),
        )
        if published:
            self._set_state(RunState.PUBLISHED)

        return RunReport(
            namespace=self.namespace,
            state=self.state,
            success=True,
            metrics=metrics,
            step_metrics=step_metrics,
            engine_errors=len(errors),
            counters=counters,
            published=published,
        )
