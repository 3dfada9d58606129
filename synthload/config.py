"""
Configuration: option blobs and process settings.

Source and step options arrive as JSON text (usually from the command line)
and are validated into frozen pydantic models before any record is
generated. Anything malformed raises ConfigurationError.

Process-wide settings come from environment variables.

Usage:
    from synthload.config import parse_source_options, parse_step_options

    source = parse_source_options('{"numRecords": 1000, "keySizeBytes": 8}')
    step = parse_step_options('{"outputRecordsPerInputRecord": 2}')

    from synthload.config import get_settings
    settings = get_settings()
    print(settings.namespace, settings.workers)
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Any, Dict, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from synthload.exceptions import ConfigurationError
from synthload.models import SizeSpec, SourceOptions, StepOptions

ModelT = TypeVar("ModelT", bound=BaseModel)

RawOptions = Union[str, bytes, Mapping[str, Any]]


def _load_mapping(raw: RawOptions, what: str) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid JSON for {what}: {exc}",
            code="invalid_json",
            details={"options": what},
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{what} must be a JSON object.",
            code="invalid_json",
            details={"options": what},
        )
    return data


def _validate(model: Type[ModelT], data: Any, what: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid {what}: {exc.error_count()} validation error(s)",
            code="invalid_options",
            details={
                "options": what,
                "errors": exc.errors(include_url=False, include_context=False),
            },
        ) from exc


def parse_source_options(raw: RawOptions) -> SourceOptions:
    """Parse SourceOptions from JSON text or a mapping."""
    return _validate(SourceOptions, _load_mapping(raw, "source options"), "source options")


def parse_step_options(raw: RawOptions) -> StepOptions:
    """Parse StepOptions from JSON text or a mapping."""
    return _validate(StepOptions, _load_mapping(raw, "step options"), "step options")


def parse_size(raw: Union[int, Mapping[str, Any], SizeSpec]) -> SizeSpec:
    """Parse a size spec: an integer or a {min, max} mapping."""
    if isinstance(raw, SizeSpec):
        return raw
    return _validate(SizeSpec, raw, "size spec")


def read_json_argument(value: str) -> str:
    """
    Resolve a command-line JSON argument.

    ``@path`` reads the JSON from a file; anything else is returned as-is.
    """
    if value.startswith("@"):
        path = value[1:]
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return handle.read()
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot read options file {path}: {exc}",
                code="options_file",
                details={"path": path},
            ) from exc
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}",
            code="invalid_env",
            details={"variable": name},
        ) from exc


class Settings:
    """Process configuration loaded from environment variables."""

    def __init__(self) -> None:
        # Metrics
        self.namespace: str = os.getenv("SYNTHLOAD_NAMESPACE", "pardo")
        self.publisher: str = os.getenv("SYNTHLOAD_PUBLISHER", "console")

        # Execution
        self.workers: int = _env_int("SYNTHLOAD_WORKERS", 1)
        self.error_policy: str = os.getenv("SYNTHLOAD_ERROR_POLICY", "collect")
        self.max_attempts: int = _env_int("SYNTHLOAD_MAX_ATTEMPTS", 1)

        # CPU burn calibration
        self.cpu_calibration_iterations: int = _env_int(
            "SYNTHLOAD_CPU_CALIBRATION_ITERATIONS", 200_000
        )

        # Logging
        self.log_level: str = os.getenv("SYNTHLOAD_LOG_LEVEL", "INFO")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
