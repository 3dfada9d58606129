"""
Delay injection: draw a duration from a distribution and spend it.

Durations are drawn deterministically per record (see synthload.shaping).
Spending a delay depends on its kind:
- sleep: time.sleep, models I/O wait without using CPU
- cpu: a spin of arithmetic iterations, never sleeps
- mixed: cpu_fraction of the duration burned, the remainder slept

CPU burn is calibrated once per process with a timed spin of
SYNTHLOAD_CPU_CALIBRATION_ITERATIONS iterations. The result (iterations per
millisecond) is cached; burning N milliseconds runs N times that many
iterations. Accuracy is approximate and degrades under CPU contention,
which is the contention the burn is meant to model.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from synthload.config import get_settings
from synthload.models import DelaySpec, Distribution
from synthload.shaping import Part, local_rng, unit_draw

logger = logging.getLogger(__name__)

_calibration_lock = threading.Lock()
_iterations_per_ms: Optional[float] = None


def draw_millis(
    distribution: Distribution,
    seed: int,
    *parts: Part,
) -> float:
    """Draw a duration in milliseconds, keyed by seed and identity parts."""
    if distribution.type == "const":
        return distribution.value_ms
    elif distribution.type == "uniform":
        span = distribution.max_ms - distribution.min_ms
        return distribution.min_ms + span * unit_draw(seed, "delay-uniform", *parts)
    elif distribution.type == "sampled":
        rng = local_rng(seed, "delay-sampled", *parts)
        return rng.choices(distribution.values_ms, weights=distribution.weights)[0]
    raise ValueError(f"Unknown distribution type: {distribution.type}")


def _spin(iterations: int) -> int:
    acc = 0
    for i in range(iterations):
        acc = (acc * 31 + i) & 0xFFFFFFFF
    return acc


def calibrate(iterations: Optional[int] = None) -> float:
    """
    Measure spin iterations per millisecond and cache the result.

    Args:
        iterations: Calibration loop size (settings default when None).

    Returns:
        Iterations per millisecond.
    """
    global _iterations_per_ms
    if iterations is None:
        iterations = get_settings().cpu_calibration_iterations
    iterations = max(1, iterations)
    started = time.perf_counter()
    _spin(iterations)
    elapsed_ms = (time.perf_counter() - started) * 1000
    rate = iterations / max(elapsed_ms, 1e-6)
    with _calibration_lock:
        _iterations_per_ms = rate
    logger.debug("CPU burn calibrated: %.0f iterations/ms", rate)
    return rate


def iterations_per_ms() -> float:
    """Cached calibration, computed on first use."""
    with _calibration_lock:
        rate = _iterations_per_ms
    if rate is None:
        rate = calibrate()
    return rate


def reset_calibration() -> None:
    """Forget the cached calibration (mainly for testing)."""
    global _iterations_per_ms
    with _calibration_lock:
        _iterations_per_ms = None


def burn_cpu(millis: float) -> int:
    """
    Busy-compute for approximately ``millis`` milliseconds.

    Returns:
        Number of iterations performed.
    """
    if millis <= 0:
        return 0
    iterations = int(millis * iterations_per_ms())
    _spin(iterations)
    return iterations


def apply_delay(spec: DelaySpec, seed: int, *parts: Part) -> float:
    """
    Draw a duration from ``spec`` and spend it.

    Returns:
        The drawn duration in milliseconds.
    """
    millis = draw_millis(spec.distribution, seed, *parts)
    if millis <= 0:
        return 0.0
    if spec.kind == "sleep":
        time.sleep(millis / 1000)
    elif spec.kind == "cpu":
        burn_cpu(millis)
    elif spec.kind == "mixed":
        cpu_millis = millis * spec.cpu_fraction
        burn_cpu(cpu_millis)
        sleep_millis = millis - cpu_millis
        if sleep_millis > 0:
            time.sleep(sleep_millis / 1000)
    else:
        raise ValueError(f"Unknown delay kind: {spec.kind}")
    return millis


class Throttle:
    """
    Caps emission at ``max_per_second``.

    Shared between worker threads: each wait() reserves the next free slot
    under a lock, then sleeps outside it until the slot arrives.
    """

    def __init__(self, max_per_second: float) -> None:
        if max_per_second <= 0:
            raise ValueError("max_per_second must be positive")
        self._interval = 1.0 / max_per_second
        self._next_slot: Optional[float] = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the caller may emit. Returns seconds waited."""
        with self._lock:
            now = time.perf_counter()
            if self._next_slot is None or self._next_slot < now:
                self._next_slot = now
            wait = self._next_slot - now
            self._next_slot += self._interval
        if wait > 0:
            time.sleep(wait)
        return wait
