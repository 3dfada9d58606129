from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from synthload.metrics.sample import AggregateMetrics


class RunState(str, Enum):
    """
    Driver lifecycle states.

    configured -> running -> completed -> published, or running -> failed.
    """

    CONFIGURED = "configured"
    RUNNING = "running"
    COMPLETED = "completed"
    PUBLISHED = "published"
    FAILED = "failed"


class _Options(BaseModel):
    # JSON blobs use camelCase keys (numRecords, keySizeBytes, ...);
    # Python callers may use field names.
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SizeSpec(_Options):
    """
    Byte length of a generated key or value.

    A bare integer is a fixed size; ``{"min": a, "max": b}`` draws a length
    uniformly in [a, b] per record.
    """

    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)

    @model_validator(mode="before")
    @classmethod
    def _coerce_fixed(cls, data: Any) -> Any:
        if isinstance(data, bool):
            raise ValueError("size must be an integer or a {min, max} range")
        if isinstance(data, int):
            return {"min": data, "max": data}
        return data

    @model_validator(mode="after")
    def _check_range(self) -> "SizeSpec":
        if self.min > self.max:
            raise ValueError(f"size range min ({self.min}) exceeds max ({self.max})")
        return self

    @property
    def fixed(self) -> bool:
        return self.min == self.max


class ConstDistribution(_Options):
    type: Literal["const"] = "const"
    value_ms: float = Field(default=0.0, ge=0)


class UniformDistribution(_Options):
    type: Literal["uniform"] = "uniform"
    min_ms: float = Field(..., ge=0)
    max_ms: float = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "UniformDistribution":
        if self.min_ms > self.max_ms:
            raise ValueError("uniform distribution requires min_ms <= max_ms")
        return self


class SampledDistribution(_Options):
    """Weighted choice over explicit durations. Equal weights when omitted."""

    type: Literal["sampled"] = "sampled"
    values_ms: List[float] = Field(..., min_length=1)
    weights: Optional[List[float]] = None

    @model_validator(mode="after")
    def _check_weights(self) -> "SampledDistribution":
        if any(value < 0 for value in self.values_ms):
            raise ValueError("sampled durations must be non-negative")
        if self.weights is not None:
            if len(self.weights) != len(self.values_ms):
                raise ValueError("weights must match values_ms in length")
            if any(weight <= 0 for weight in self.weights):
                raise ValueError("weights must be positive")
        return self


Distribution = Annotated[
    Union[ConstDistribution, UniformDistribution, SampledDistribution],
    Field(discriminator="type"),
]


class DelaySpec(_Options):
    """
    Artificial delay injected per record or per bundle.

    Attributes:
        kind: "sleep" suspends the worker (I/O wait), "cpu" burns CPU without
            sleeping, "mixed" burns ``cpu_fraction`` of the duration and sleeps
            the remainder.
        distribution: How the duration in milliseconds is drawn.
        cpu_fraction: Share of a mixed delay spent burning CPU.
    """

    kind: Literal["sleep", "cpu", "mixed"] = "sleep"
    distribution: Distribution
    cpu_fraction: float = Field(default=0.5, ge=0.0, le=1.0)


class SourceOptions(_Options):
    """
    Parameters of the synthetic bounded source.

    Attributes:
        num_records: Number of records to generate (alias recordCount).
        key_size_bytes: Key length spec.
        value_size_bytes: Value length spec.
        num_hot_keys: Size of the hot key set (0 disables hot keys).
        hot_key_fraction: Probability that a record uses a hot key.
        value_random_fraction: Share of value bytes that are random; the rest
            is constant filler, so lower values compress better.
        bundle_size_records: Records per bundle (split point frequency).
        bundle_delay: Delay applied once before each bundle.
        max_records_per_second: Emission throttle.
        seed: Seed for all deterministic draws.
    """

    num_records: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("num_records", "numRecords", "recordCount"),
    )
    key_size_bytes: SizeSpec = Field(default_factory=lambda: SizeSpec(min=1, max=1))
    value_size_bytes: SizeSpec = Field(default_factory=lambda: SizeSpec(min=1, max=1))
    num_hot_keys: int = Field(default=0, ge=0)
    hot_key_fraction: float = Field(default=0.0, ge=0.0, le=1.0)
    value_random_fraction: float = Field(default=1.0, ge=0.0, le=1.0)
    bundle_size_records: int = Field(
        default=100,
        ge=1,
        validation_alias=AliasChoices(
            "bundle_size_records", "bundleSizeRecords", "splitPointFrequencyRecords"
        ),
    )
    bundle_delay: Optional[DelaySpec] = None
    max_records_per_second: Optional[float] = Field(default=None, gt=0)
    seed: int = 42


class StepOptions(_Options):
    """
    Parameters of one synthetic stress step.

    Attributes:
        output_records_per_input_record: Fan-out factor (0 drops every record).
        delay: Delay applied to every record.
        per_bundle_delay: Delay applied once at the start of each bundle.
        failure_probability: Chance a record raises SyntheticFailure.
        key_size_bytes: Output key size when keys are not preserved.
        value_size_bytes: Output value size; input length when unset.
        preserves_input_key_distribution: Keep input keys on output records.
        max_records_per_second: Throughput cap for one step instance.
        seed: Seed for all deterministic draws.
    """

    output_records_per_input_record: int = Field(default=1, ge=0)
    delay: Optional[DelaySpec] = None
    per_bundle_delay: Optional[DelaySpec] = None
    failure_probability: float = Field(default=0.0, ge=0.0, le=1.0)
    key_size_bytes: Optional[SizeSpec] = None
    value_size_bytes: Optional[SizeSpec] = None
    preserves_input_key_distribution: bool = True
    max_records_per_second: Optional[float] = Field(default=None, gt=0)
    seed: int = 42


@dataclass(frozen=True)
class Record:
    """A generated key/value pair. Immutable once produced."""

    key: bytes
    value: bytes

    @property
    def size(self) -> int:
        return len(self.key) + len(self.value)


class RunReport(BaseModel):
    """
    Outcome of one driver run.

    Attributes:
        namespace: Metrics namespace of the run.
        state: Terminal RunState.
        success: False only when the engine reported a failed run.
        metrics: Frozen terminal metrics (None for failed runs).
        step_metrics: Per-step totals keyed by step label.
        engine_errors: Records reported on the engine's error channel.
        counters: Engine counters.
        published: Whether publication succeeded.
    """

    model_config = ConfigDict(extra="forbid")

    namespace: str
    state: RunState
    success: bool
    metrics: Optional[AggregateMetrics] = None
    step_metrics: Dict[str, AggregateMetrics] = Field(default_factory=dict)
    engine_errors: int = Field(default=0, ge=0)
    counters: Dict[str, int] = Field(default_factory=dict)
    published: bool = False
