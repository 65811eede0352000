"""
Configuration from environment variables.

Usage:
    from dockside.config import get_settings

    settings = get_settings()
    print(settings.cleanup, settings.runtime)
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from dockside.exceptions import DocksideConfigError
from dockside.models import CleanupPolicy

if TYPE_CHECKING:
    from dockside.client import RuntimeClient

RUNTIME_CHOICES = ("auto", "docker", "podman", "http")


class Settings:
    """dockside configuration loaded from environment variables."""

    def __init__(self) -> None:
        # What disposal does with a container: remove (default) or keep
        raw_cleanup = os.getenv("DOCKSIDE_CLEANUP", "remove").strip().lower()
        try:
            self.cleanup: CleanupPolicy = CleanupPolicy(raw_cleanup)
        except ValueError:
            raise DocksideConfigError(
                f"DOCKSIDE_CLEANUP must be 'remove' or 'keep', got {raw_cleanup!r}",
                details={"value": raw_cleanup},
            ) from None

        # Runtime client: auto-detect a CLI, force one, or talk HTTP to the socket
        self.runtime: str = os.getenv("DOCKSIDE_RUNTIME", "auto").strip().lower()
        if self.runtime not in RUNTIME_CHOICES:
            raise DocksideConfigError(
                f"DOCKSIDE_RUNTIME must be one of {', '.join(RUNTIME_CHOICES)}, "
                f"got {self.runtime!r}",
                details={"value": self.runtime},
            )

        # Docker Engine API socket for the HTTP client
        self.docker_socket: str = os.getenv(
            "DOCKSIDE_DOCKER_SOCKET", "/var/run/docker.sock"
        )

        # Per-request timeout of the HTTP client, in seconds (log follows are unbounded)
        raw_timeout = os.getenv("DOCKSIDE_HTTP_TIMEOUT", "60")
        try:
            self.http_timeout: float = float(raw_timeout)
        except ValueError:
            raise DocksideConfigError(
                f"DOCKSIDE_HTTP_TIMEOUT must be a number, got {raw_timeout!r}",
                details={"value": raw_timeout},
            ) from None

    @property
    def keep_containers(self) -> bool:
        return self.cleanup is CleanupPolicy.KEEP


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()


def default_client(settings: Optional[Settings] = None) -> "RuntimeClient":
    """Build the runtime client selected by DOCKSIDE_RUNTIME."""
    from dockside.clients.cli import CliClient
    from dockside.clients.detect import ContainerRuntime
    from dockside.clients.http import HttpClient

    settings = settings or get_settings()
    if settings.runtime == "http":
        return HttpClient(
            socket_path=settings.docker_socket, timeout=settings.http_timeout
        )
    if settings.runtime == "auto":
        return CliClient()
    return CliClient(runtime=ContainerRuntime(settings.runtime))
