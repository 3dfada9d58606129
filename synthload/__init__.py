"""
synthload - Synthetic load tests for per-record processing pipelines.

Generate a reproducible synthetic dataset, push it through a chain of
stress steps (sleep, CPU burn, fan-out, injected failures) and publish
throughput, latency and error metrics.

Quick start:
    from synthload import Driver

    report = Driver.from_json(
        '{"numRecords": 1000, "keySizeBytes": 8, "valueSizeBytes": 100}',
        '{"outputRecordsPerInputRecord": 1, '
        '"delay": {"kind": "cpu", "distribution": {"type": "const", "valueMs": 1}}}',
        count=2,
    ).run()

Building blocks:
    from synthload.models import SourceOptions, StepOptions, SizeSpec, DelaySpec
    from synthload.source import SyntheticSource
    from synthload.chain import StepChain
    from synthload.metrics import MetricsAggregator, MetricsMonitor, publish
    from synthload.engine import LocalEngine
"""

from synthload.chain import StepChain
from synthload.config import parse_source_options, parse_step_options
from synthload.driver import Driver
from synthload.engine import EngineState, LocalEngine, PipelineResult
from synthload.exceptions import (
    AggregationError,
    ConfigurationError,
    PublicationError,
    SynthloadError,
    SyntheticFailure,
)
from synthload.metrics import (
    AggregateMetrics,
    MetricsAggregator,
    MetricsMonitor,
    MetricSample,
    publish,
)
from synthload.models import (
    DelaySpec,
    Record,
    RunReport,
    RunState,
    SizeSpec,
    SourceOptions,
    StepOptions,
)
from synthload.shaping import RecordShaper, shape
from synthload.source import SyntheticSource, generate
from synthload.step import SyntheticStep

__all__ = [
    "AggregateMetrics",
    "AggregationError",
    "ConfigurationError",
    "DelaySpec",
    "Driver",
    "EngineState",
    "LocalEngine",
    "MetricSample",
    "MetricsAggregator",
    "MetricsMonitor",
    "PipelineResult",
    "PublicationError",
    "Record",
    "RecordShaper",
    "RunReport",
    "RunState",
    "SizeSpec",
    "SourceOptions",
    "StepChain",
    "StepOptions",
    "SynthloadError",
    "SyntheticFailure",
    "SyntheticSource",
    "SyntheticStep",
    "generate",
    "parse_source_options",
    "parse_step_options",
    "publish",
    "shape",
]
