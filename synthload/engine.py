"""
LocalEngine: in-process execution engine for synthetic load runs.

Provides what the harness needs from an execution engine:
- a bounded source split into disjoint ranges, one per worker
- a chain of named per-record stages
- a per-record error channel (PipelineResult.errors), never swallowed
- a blocking wait_until_finish()
- named counters (PipelineResult.counters)

Architecture:
    run() → split source → ThreadPoolExecutor (N workers) → PipelineResult

    Each worker reads its range bundle by bundle. A record's terminal
    outputs are buffered until its whole path through the chain succeeds,
    then handed to the monitor, so a retried record is never counted twice.
    Failed attempts restart from the first step, up to max_attempts.

Usage:
    engine = LocalEngine(workers=4, error_policy="collect")
    result = engine.run(source, chain, monitor)
    state = result.wait_until_finish()
    print(state, result.counters.snapshot(), len(result.errors))
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from synthload import telemetry
from synthload.chain import StepChain
from synthload.exceptions import AggregationError, ConfigurationError, SyntheticFailure
from synthload.metrics.collector import CounterRegistry
from synthload.metrics.monitor import MetricsMonitor
from synthload.models import Record
from synthload.source import SyntheticSource

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    """Terminal (or current) state of a pipeline run."""

    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ErrorPolicy(str, Enum):
    """What the engine does with a record whose attempts are exhausted."""

    COLLECT = "collect"  # report on the error channel, keep going
    FAIL = "fail"  # report, stop the worker, fail the run


@dataclass(frozen=True)
class RecordError:
    """
    A record that failed every attempt.

    Attributes:
        index: Source index of the record.
        step: Label of the failing step, when known.
        error: String form of the last exception.
        error_type: Class name of the last exception.
        attempts: Attempts made.
    """

    index: int
    step: Optional[str]
    error: str
    error_type: str
    attempts: int


class PipelineResult:
    """Handle on a submitted run."""

    def __init__(self, counters: CounterRegistry) -> None:
        self.counters = counters
        self._futures: List[Future] = []
        self._errors: List[RecordError] = []
        self._errors_lock = threading.Lock()
        self._started = time.perf_counter()
        self._finished: Optional[float] = None
        self._pending = 0
        self._sealed = False
        self._pending_lock = threading.Lock()

    def _track(self, future: Future) -> None:
        with self._pending_lock:
            self._pending += 1
        self._futures.append(future)
        future.add_done_callback(self._on_done)

    def _on_done(self, _future: Future) -> None:
        with self._pending_lock:
            self._pending -= 1
            if self._pending == 0 and not self._sealed:
                self._finished = time.perf_counter()

    def _seal(self) -> None:
        # Done callbacks may still be pending when wait() returns.
        with self._pending_lock:
            if not self._sealed:
                if self._pending != 0 or self._finished is None:
                    self._finished = time.perf_counter()
                self._sealed = True

    def _report(self, error: RecordError) -> None:
        with self._errors_lock:
            self._errors.append(error)

    @property
    def errors(self) -> List[RecordError]:
        """Records reported on the error channel so far."""
        with self._errors_lock:
            return list(self._errors)

    @property
    def state(self) -> EngineState:
        if not all(future.done() for future in self._futures):
            return EngineState.RUNNING
        for future in self._futures:
            if future.exception() is not None:
                return EngineState.FAILED
        return EngineState.DONE

    @property
    def failure(self) -> Optional[BaseException]:
        """First exception that failed a worker, if any."""
        for future in self._futures:
            if future.done() and future.exception() is not None:
                return future.exception()
        return None

    @property
    def wall_clock_seconds(self) -> float:
        finished = self._finished if self._finished is not None else time.perf_counter()
        return max(0.0, finished - self._started)

    def wait_until_finish(self, timeout: Optional[float] = None) -> EngineState:
        """
        Block until every worker finishes.

        Args:
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            DONE or FAILED, or RUNNING if the timeout expired first.
        """
        concurrent.futures.wait(self._futures, timeout=timeout)
        if all(future.done() for future in self._futures):
            self._seal()
        return self.state


class Engine(Protocol):
    """Execution engine interface used by the Driver."""

    def run(
        self,
        source: SyntheticSource,
        chain: StepChain,
        monitor: MetricsMonitor,
    ) -> PipelineResult:
        ...


class LocalEngine:
    """
    Thread-pool engine.

    Attributes:
        workers: Number of worker threads (and source splits).
        error_policy: ErrorPolicy for exhausted records.
        max_attempts: Attempts per record before it is reported.
    """

    def __init__(
        self,
        *,
        workers: int = 1,
        error_policy: str = "collect",
        max_attempts: int = 1,
    ) -> None:
        if workers < 1:
            raise ConfigurationError(
                "workers must be at least 1", code="invalid_engine", details={"workers": workers}
            )
        if max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be at least 1",
                code="invalid_engine",
                details={"max_attempts": max_attempts},
            )
        try:
            self.error_policy = ErrorPolicy(error_policy)
        except ValueError:
            raise ConfigurationError(
                f"Unknown error policy '{error_policy}'",
                code="invalid_engine",
                details={"error_policy": error_policy},
            ) from None
        self.workers = workers
        self.max_attempts = max_attempts

    def run(
        self,
        source: SyntheticSource,
        chain: StepChain,
        monitor: MetricsMonitor,
    ) -> PipelineResult:
        """Submit the run and return immediately."""
        result = PipelineResult(CounterRegistry())
        splits: Sequence[SyntheticSource] = source.split(self.workers)
        logger.info(
            "Starting run: %d records, %d steps, %d split(s)",
            len(source),
            len(chain),
            len(splits),
        )
        executor = ThreadPoolExecutor(
            max_workers=len(splits), thread_name_prefix="synthload-worker-"
        )
        try:
            for split in splits:
                result._track(
                    executor.submit(self._run_split, split, chain, monitor, result)
                )
        finally:
            executor.shutdown(wait=False)
        return result

    def _run_split(
        self,
        split: SyntheticSource,
        chain: StepChain,
        monitor: MetricsMonitor,
        result: PipelineResult,
    ) -> None:
        with telemetry.span("synthload.split", start=split.start, stop=split.stop):
            index = split.start
            for bundle in split.bundles():
                result.counters.inc("bundles")
                chain.start_bundle()
                for record in bundle:
                    result.counters.inc("records_read")
                    self._run_record(index, record, chain, monitor, result)
                    index += 1

    def _run_record(
        self,
        index: int,
        record: Record,
        chain: StepChain,
        monitor: MetricsMonitor,
        result: PipelineResult,
    ) -> None:
        for attempt in range(1, self.max_attempts + 1):
            started = time.perf_counter_ns()
            try:
                outputs = list(chain.process(record, index))
            except AggregationError:
                raise
            except Exception as exc:
                if attempt < self.max_attempts:
                    result.counters.inc("records_retried")
                    logger.debug("Retrying record %d after %s", index, exc)
                    continue
                elapsed = time.perf_counter_ns() - started
                self._report_failure(index, exc, attempt, elapsed, monitor, result)
                if self.error_policy is ErrorPolicy.FAIL:
                    raise
                return
            elapsed = time.perf_counter_ns() - started
            for output in outputs:
                monitor.observe(output, elapsed)
            result.counters.inc("terminal_records", len(outputs))
            return

    def _report_failure(
        self,
        index: int,
        exc: Exception,
        attempts: int,
        elapsed_nanos: int,
        monitor: MetricsMonitor,
        result: PipelineResult,
    ) -> None:
        step = exc.step if isinstance(exc, SyntheticFailure) else None
        result._report(
            RecordError(
                index=index,
                step=step,
                error=str(exc),
                error_type=type(exc).__name__,
                attempts=attempts,
            )
        )
        result.counters.inc("records_failed")
        monitor.observe_error(elapsed_nanos)
        logger.debug("Record %d failed after %d attempt(s): %s", index, attempts, exc)
