"""
Runner: starts containers against one runtime client and makes sure none of
them outlives it.

Python cannot check at compile time that a client outlives the containers
built from it, so the Runner does it at runtime: it remembers every container
it started (weakly) and disposes of the ones still alive when it is closed.

Usage:
    async with Runner(CliClient()) as runner:
        mongo = await runner.run(images.mongo())
        port = await mongo.get_host_port(27017)
    # every container started above has been disposed here
"""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from typing import Any, Dict, List, Optional

from dockside.client import RuntimeClient
from dockside.config import default_client
from dockside.container import Container
from dockside.exceptions import RunnerClosedError
from dockside.models import CleanupPolicy, Image, RunArgs

logger = logging.getLogger(__name__)


class Runner:
    """
    Container factory bound to a runtime client.

    Thread-safe: the registry of live containers is protected by a lock.

    Args:
        client: Runtime client; defaults to the one selected by DOCKSIDE_RUNTIME
        cleanup: Default cleanup policy; None defers to DOCKSIDE_CLEANUP
    """

    def __init__(
        self,
        client: Optional[RuntimeClient] = None,
        cleanup: Optional[CleanupPolicy] = None,
    ) -> None:
        self._client = client or default_client()
        self._cleanup = cleanup
        self._containers: "weakref.WeakSet[Container]" = weakref.WeakSet()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def client(self) -> RuntimeClient:
        return self._client

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(
        self,
        image: Image,
        run_args: Optional[RunArgs] = None,
        cleanup: Optional[CleanupPolicy] = None,
    ) -> Container:
        """
        Start `image` and wait until it is ready.

        Raises:
            RunnerClosedError: The runner has been closed
            RuntimeClientError: The runtime failed to create or start it
            SandboxNotReadyError: A readiness condition can never hold
        """
        if self._closed:
            raise RunnerClosedError("Runner is closed")

        container = await Container.create(
            image,
            self._client,
            cleanup=cleanup if cleanup is not None else self._cleanup,
            run_args=run_args,
        )
        with self._lock:
            closed = self._closed
            if not closed:
                self._containers.add(container)
        if closed:
            # Closed while this container was starting
            await container.aclose()
            raise RunnerClosedError(
                f"Runner closed while {container.id} was starting",
                sandbox_id=container.id,
            )
        return container

    def active(self) -> List[Container]:
        """Containers started here that have not been disposed yet."""
        with self._lock:
            return [c for c in self._containers if not c.disposed]

    def stats(self) -> Dict[str, Any]:
        active = self.active()
        return {
            "active_count": len(active),
            "container_ids": [c.id for c in active],
            "closed": self._closed,
        }

    def _drain(self) -> List[Container]:
        with self._lock:
            self._closed = True
            containers = list(self._containers)
            self._containers.clear()
        return containers

    async def aclose(self) -> None:
        """Dispose every container still alive. Idempotent."""
        containers = self._drain()
        if containers:
            logger.debug("Disposing %d containers on runner close", len(containers))
        await asyncio.gather(*(c.aclose() for c in containers))

    def close(self) -> None:
        """Blocking variant of aclose()."""
        for container in self._drain():
            container.close()

    async def __aenter__(self) -> "Runner":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __enter__(self) -> "Runner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
