"""
Typed exceptions for synthload.

Provides structured error handling with:
- SynthloadError: Base exception for all synthload errors
- ConfigurationError: Malformed or out-of-range source/step options
- SyntheticFailure: Deliberately injected per-record failure
- AggregationError: Mutation of metrics after they were frozen
- PublicationError: Failure to emit the final summary

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SynthloadError(Exception):
    """Base exception for all synthload errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or reports."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(SynthloadError):
    """Configuration or validation error.

    Raised at parse time, before any record is generated:
    - Malformed JSON option blobs
    - Negative or inconsistent size ranges
    - Probabilities outside [0, 1]
    - Unknown delay kinds or distributions

    Never retried.

    Examples:
        ConfigurationError("Invalid source options", details={"errors": [...]})
    """

    pass


class SyntheticFailure(SynthloadError):
    """Injected per-record failure raised by a SyntheticStep.

    Surfaced to the execution engine's error policy, never handled inside
    the step.

    Attributes:
        step: Label of the step that failed
        draw: The deterministic draw that triggered the failure
        probability: Configured failure probability
    """

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        draw: Optional[float] = None,
        probability: Optional[float] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if step:
            details["step"] = step
        if draw is not None:
            details["draw"] = draw
        if probability is not None:
            details["probability"] = probability

        self.step = step
        self.draw = draw
        self.probability = probability

        super().__init__(message, code=code, details=details)


class AggregationError(SynthloadError):
    """Attempted mutation of frozen metrics.

    This is an invariant violation: a correct run never merges a sample
    after the aggregator has been finalized.

    Attributes:
        namespace: Namespace of the aggregator that rejected the sample
    """

    def __init__(
        self,
        message: str,
        *,
        namespace: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if namespace:
            details["namespace"] = namespace

        self.namespace = namespace

        super().__init__(message, code=code, details=details)


class PublicationError(SynthloadError):
    """Failure to publish the run summary.

    Logged only; it does not change the run's success status.

    Attributes:
        publisher: Name of the publisher that failed
    """

    def __init__(
        self,
        message: str,
        *,
        publisher: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if publisher:
            details["publisher"] = publisher

        self.publisher = publisher

        super().__init__(message, code=code, details=details)


__all__ = [
    "SynthloadError",
    "ConfigurationError",
    "SyntheticFailure",
    "AggregationError",
    "PublicationError",
]
