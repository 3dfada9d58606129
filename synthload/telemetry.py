"""Optional Logfire integration for tracing runs."""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

_logfire = None
_configured = False


def _load_logfire():
    global _logfire
    if _logfire is not None:
        return _logfire
    try:
        import logfire
    except ImportError:
        _logfire = False
        return _logfire
    _logfire = logfire
    return _logfire


def _env_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _console_setting():
    # Console output stays with logging unless explicitly requested.
    env_console = os.getenv("SYNTHLOAD_LOGFIRE_CONSOLE")
    if env_console is not None and _env_truthy(env_console):
        return None
    return False


def enabled() -> bool:
    logfire = _load_logfire()
    if not logfire:
        return False
    flag = os.getenv("SYNTHLOAD_LOGFIRE")
    if flag is not None:
        return _env_truthy(flag)
    return True


def configure() -> bool:
    logfire = _load_logfire()
    if not logfire or not enabled():
        return False
    global _configured
    if not _configured:
        try:
            logfire.configure(console=_console_setting())
        except Exception as exc:
            logger.warning("Logfire configuration failed: %s", exc)
            return False
        _configured = True
    return True


@contextmanager
def span(name: str, **attrs: Any) -> Iterator[None]:
    """Trace a block as a Logfire span; a plain block when Logfire is off."""
    if not configure():
        yield
        return
    with _logfire.span(name, **attrs):
        yield


def reset() -> None:
    """Forget the loaded module and configuration (mainly for testing)."""
    global _logfire, _configured
    _logfire = None
    _configured = False
