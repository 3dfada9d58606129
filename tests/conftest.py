"""Pytest configuration shared by the synthload test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports without installation
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from synthload import delay, telemetry  # noqa: E402
from synthload.config import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep env-driven settings, telemetry and CPU calibration per test."""
    monkeypatch.setenv("SYNTHLOAD_LOGFIRE", "0")
    monkeypatch.setenv("SYNTHLOAD_CPU_CALIBRATION_ITERATIONS", "20000")
    reset_settings()
    telemetry.reset()
    delay.reset_calibration()
    yield
    reset_settings()
    telemetry.reset()
    delay.reset_calibration()
