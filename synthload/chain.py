from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from synthload.exceptions import ConfigurationError
from synthload.metrics.sample import AggregateMetrics
from synthload.models import Record, StepOptions
from synthload.step import SyntheticStep


def step_label(position: int) -> str:
    return f"Step: {position}"


class StepChain:
    """
    SyntheticSteps applied in a fixed order.

    A record flows through step 0, then 1, ..., N-1. A failure in step i
    propagates to the caller; the chain never re-runs earlier steps.
    """

    def __init__(self, steps: Sequence[SyntheticStep]) -> None:
        self.steps: List[SyntheticStep] = list(steps)

    @classmethod
    def build(
        cls,
        step_options: Union[StepOptions, Sequence[StepOptions]],
        count: Optional[int] = None,
    ) -> "StepChain":
        """
        Build a chain from one StepOptions repeated ``count`` times (default 1)
        or from a sequence with one StepOptions per step.
        """
        if isinstance(step_options, StepOptions):
            count = 1 if count is None else count
            if count < 0:
                raise ConfigurationError(
                    "number of operations must be non-negative",
                    code="invalid_options",
                    details={"count": count},
                )
            options_list = [step_options] * count
        else:
            options_list = list(step_options)
            if count is not None and count != len(options_list):
                raise ConfigurationError(
                    f"expected {count} step options, got {len(options_list)}",
                    code="invalid_options",
                    details={"count": count, "given": len(options_list)},
                )
        return cls(
            [
                SyntheticStep(options, label=step_label(i))
                for i, options in enumerate(options_list)
            ]
        )

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def labels(self) -> List[str]:
        return [step.label for step in self.steps]

    def start_bundle(self) -> None:
        for step in self.steps:
            step.start_bundle()

    def process(self, record: Record, index: Optional[int] = None) -> Iterator[Record]:
        """
        Yield the terminal records produced from ``record``, depth first.

        ``index`` is the record's source index. When given, each step keys its
        draws by the index and the path of output indexes leading to it, so
        records with identical bytes still get independent draws.
        """
        path = None if index is None else (index,)
        yield from self._process_from(0, record, path)

    def _process_from(
        self, depth: int, record: Record, path: Optional[Tuple[int, ...]]
    ) -> Iterator[Record]:
        if depth == len(self.steps):
            yield record
            return
        outputs = self.steps[depth].process(record, path)
        for i, output in enumerate(outputs):
            yield from self._process_from(
                depth + 1, output, None if path is None else path + (i,)
            )

    def step_metrics(self) -> Dict[str, AggregateMetrics]:
        """Current per-step totals keyed by label."""
        return {step.label: step.metrics.totals() for step in self.steps}

    def freeze(self) -> Dict[str, AggregateMetrics]:
        """Freeze every step's aggregator and return the final totals."""
        return {step.label: step.metrics.freeze() for step in self.steps}
