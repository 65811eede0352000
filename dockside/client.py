"""
Runtime client contract.

A RuntimeClient is the only thing that talks to the container engine.
Containers receive one at construction and never reach for a global, so the
whole lifecycle can be driven against an in-memory fake in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from dockside.logs import LogStream
from dockside.models import Image, RunArgs
from dockside.ports import Ports


class RuntimeClient(ABC):
    """
    Async operations against a container engine.

    Implementations must:
    - tolerate concurrent calls from many containers
    - be usable from any event loop, since synchronous teardown drives
      stop/rm on a private loop (open connections or processes per call)
    - treat stop/rm of an unknown id as a no-op, not an error
    - raise RuntimeClientError when the engine is unreachable or a call fails
    """

    @abstractmethod
    async def create_and_start(
        self, image: Image, run_args: Optional[RunArgs] = None
    ) -> str:
        """Create a container from `image`, start it and return its id."""

    @abstractmethod
    async def start(self, container_id: str) -> None:
        """Start a created or stopped container."""

    @abstractmethod
    async def stop(self, container_id: str) -> None:
        """Stop a running container."""

    @abstractmethod
    async def rm(self, container_id: str) -> None:
        """Remove a container and its anonymous volumes."""

    @abstractmethod
    def stdout_logs(self, container_id: str) -> LogStream:
        """Follow the container's stdout from the beginning."""

    @abstractmethod
    def stderr_logs(self, container_id: str) -> LogStream:
        """Follow the container's stderr from the beginning."""

    @abstractmethod
    async def ports(self, container_id: str) -> Ports:
        """Current host port mappings of the container."""
