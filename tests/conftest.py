"""Pytest configuration: import path and a clean dockside environment per test."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path so `tests.clients` resolves
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from dockside import telemetry  # noqa: E402
from dockside.config import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (
        "DOCKSIDE_CLEANUP",
        "DOCKSIDE_RUNTIME",
        "DOCKSIDE_DOCKER_SOCKET",
        "DOCKSIDE_HTTP_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DOCKSIDE_LOGFIRE", "0")
    reset_settings()
    telemetry.reset()
    yield
    reset_settings()
    telemetry.reset()
