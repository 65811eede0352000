"""Optional Logfire integration for lifecycle spans."""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

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


def enabled() -> bool:
    logfire = _load_logfire()
    if not logfire:
        return False
    flag = os.getenv("DOCKSIDE_LOGFIRE")
    if flag is not None:
        return _env_truthy(flag)
    return True


def configure() -> bool:
    logfire = _load_logfire()
    if not logfire or not enabled():
        return False
    global _configured
    if not _configured:
        # Telemetry must never break a test run.
        try:
            logfire.configure(send_to_logfire="if-token-present")
        except Exception:
            return False
        _configured = True
    return True


@contextmanager
def span(name: str, **attrs: Any) -> Iterator[None]:
    """Wrap a lifecycle step in a Logfire span when Logfire is available."""
    if not configure():
        yield
        return
    with _logfire.span(name, **attrs):
        yield


def reset() -> None:
    """Forget cached Logfire state. For testing only."""
    global _logfire, _configured
    _logfire = None
    _configured = False
