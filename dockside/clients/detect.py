"""
Container runtime detection.

Handles detection of available container CLIs (Docker vs Podman) and
provides the command name for each.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from enum import Enum

from dockside.exceptions import RuntimeClientError

logger = logging.getLogger(__name__)


class ContainerRuntime(Enum):
    DOCKER = "docker"
    PODMAN = "podman"


def _check_works(command: str) -> bool:
    """Verify the CLI can reach its engine."""
    try:
        subprocess.run([command, "info"], capture_output=True, check=True, timeout=5)
        return True
    except (subprocess.SubprocessError, OSError):
        return False


def runtime_available(runtime: ContainerRuntime) -> bool:
    """True when the runtime's CLI is installed and reaches its engine."""
    return shutil.which(runtime.value) is not None and _check_works(runtime.value)


def detect_runtime() -> ContainerRuntime:
    """
    Detect available container runtime.

    Priority:
    1. Docker (the engine most test suites target)
    2. Podman (docker-compatible CLI)

    Raises:
        RuntimeClientError: If no supported runtime is found/working.
    """
    for runtime in (ContainerRuntime.DOCKER, ContainerRuntime.PODMAN):
        if runtime_available(runtime):
            logger.info("Detected container runtime: %s", runtime.value)
            return runtime

    raise RuntimeClientError(
        "No container runtime available. Please install Docker or Podman.",
        operation="detect",
    )


def get_runtime_command(runtime: ContainerRuntime) -> str:
    """Return the CLI command for the runtime."""
    return runtime.value
