"""
Container handle: one running sandbox, ready to use.

Container.create() is the single synchronization point of the library. It
asks the runtime client to start a container, then evaluates the image's
readiness conditions strictly in declaration order:

    PENDING -> EVALUATING(0) -> ... -> EVALUATING(n-1) -> READY

and only then hands the container to the caller. A condition that can never
hold (log stream closed, timeout elapsed) moves the container to FAILED,
disposes of it and raises SandboxNotReadyError.

Disposal follows the container's CleanupPolicy: REMOVE issues stop then rm,
KEEP leaves the container running. It happens at most once per container,
whichever of these comes first:
- `await container.aclose()` or leaving `async with container`
- `container.close()` or leaving `with container`
- the handle being garbage collected
- interpreter exit

The synchronous paths cannot suspend, so they run the async teardown to
completion on a private event loop before returning. When the calling thread
already runs a loop, that private loop lives on a worker thread and the
caller blocks on it; this is the only place where dockside forces async work
to finish synchronously. The runtime client therefore has to work from any
event loop (see RuntimeClient).

Usage:
    async with await Container.create(image, client) as container:
        port = await container.get_host_port(27017)
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from dockside import telemetry
from dockside.client import RuntimeClient
from dockside.config import get_settings
from dockside.exceptions import (
    EndOfStreamError,
    PortNotMappedError,
    SandboxNotReadyError,
)
from dockside.models import (
    CleanupPolicy,
    Duration,
    Image,
    LogMessage,
    LogSource,
    Nothing,
    PortProtocol,
    ReadyCondition,
    RunArgs,
)
from dockside.ports import Ports

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContainerState(str, Enum):
    PENDING = "pending"
    EVALUATING = "evaluating"
    READY = "ready"
    FAILED = "failed"
    DISPOSED = "disposed"


def run_blocking(factory: Callable[[], Awaitable[T]]) -> T:
    """
    Run an async callable to completion from synchronous code.

    Uses asyncio.run directly when no loop runs in this thread. Otherwise the
    coroutine gets its own loop on a worker thread, so the caller's loop is
    never re-entered.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(factory())

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="dockside-sync") as pool:
        return pool.submit(lambda: asyncio.run(factory())).result()


class _Teardown:
    """
    Stop/remove work for one container id.

    Holds no reference to the Container so it can serve as its finalizer.
    Failures are logged, never raised: disposal happens where nobody can
    handle them, and rm is still attempted when stop failed.
    """

    def __init__(
        self, client: RuntimeClient, container_id: str, cleanup: CleanupPolicy
    ) -> None:
        self.client = client
        self.container_id = container_id
        self.cleanup = cleanup

    async def run(self) -> None:
        if self.cleanup is CleanupPolicy.KEEP:
            logger.debug("Keeping container %s", self.container_id)
            return

        with telemetry.span("dockside.teardown", container_id=self.container_id):
            logger.debug("Stopping container %s", self.container_id)
            try:
                await self.client.stop(self.container_id)
            except Exception as e:
                logger.error("Failed to stop container %s: %s", self.container_id, e)

            logger.debug("Removing container %s", self.container_id)
            try:
                await self.client.rm(self.container_id)
            except Exception as e:
                logger.error("Failed to remove container %s: %s", self.container_id, e)

    def run_sync(self) -> None:
        run_blocking(self.run)


class Container:
    """
    Handle to a running container.

    Build with Container.create() (or Runner.run()); the constructor does not
    wait for readiness. The runtime client is shared, never owned: it must
    stay usable until every container built from it has been disposed.
    """

    def __init__(
        self,
        container_id: str,
        client: RuntimeClient,
        image: Image,
        cleanup: CleanupPolicy = CleanupPolicy.REMOVE,
    ) -> None:
        self._id = container_id
        self._client = client
        self._image = image
        self._cleanup = CleanupPolicy(cleanup)
        self._state = ContainerState.PENDING
        self._condition_index: Optional[int] = None
        self._teardown = _Teardown(client, container_id, self._cleanup)
        self._finalizer = weakref.finalize(self, self._teardown.run_sync)

    @classmethod
    async def create(
        cls,
        image: Image,
        client: RuntimeClient,
        cleanup: Optional[CleanupPolicy] = None,
        run_args: Optional[RunArgs] = None,
    ) -> "Container":
        """
        Start a container from `image` and wait until it is ready.

        Args:
            image: Descriptor of the container to start
            client: Runtime client used for this container's whole life
            cleanup: Disposal policy; defaults to DOCKSIDE_CLEANUP
            run_args: Optional per-run overrides (name, network, ports)

        Returns:
            A container whose readiness conditions all hold

        Raises:
            RuntimeClientError: The runtime failed to create or start it
            SandboxNotReadyError: A readiness condition can never hold
        """
        if cleanup is None:
            cleanup = get_settings().cleanup

        with telemetry.span("dockside.create", image=image.descriptor()):
            container_id = await client.create_and_start(image, run_args)
            logger.debug(
                "Created container %s from %s", container_id, image.descriptor()
            )
            container = cls(container_id, client, image, cleanup)
            try:
                await container._block_until_ready()
            except BaseException:
                container._state = ContainerState.FAILED
                await container.aclose()
                raise
        return container

    async def _block_until_ready(self) -> None:
        logger.debug("Waiting for container %s to be ready", self._id)
        for index, condition in enumerate(self._image.ready_conditions):
            self._state = ContainerState.EVALUATING
            self._condition_index = index
            await self._wait_for(condition)
        self._state = ContainerState.READY
        self._condition_index = None
        logger.info("Container %s is now ready", self._id)

    async def _wait_for(self, condition: ReadyCondition) -> None:
        if isinstance(condition, LogMessage):
            if condition.source is LogSource.STDOUT:
                stream = self._client.stdout_logs(self._id)
            else:
                stream = self._client.stderr_logs(self._id)
            try:
                async with stream:
                    wait = stream.wait_for_message(condition.message)
                    if condition.timeout is None:
                        await wait
                    else:
                        await asyncio.wait_for(wait, condition.timeout)
            except EndOfStreamError as e:
                raise SandboxNotReadyError(
                    f"Container {self._id} closed {condition.source.value} before "
                    f"{condition.message!r} appeared ({e.lines_compared} lines read)",
                    sandbox_id=self._id,
                    condition=condition,
                    reason="end_of_stream",
                ) from e
            except asyncio.TimeoutError as e:
                raise SandboxNotReadyError(
                    f"Container {self._id} did not log {condition.message!r} on "
                    f"{condition.source.value} within {condition.timeout}s",
                    sandbox_id=self._id,
                    condition=condition,
                    reason="timeout",
                ) from e
        elif isinstance(condition, Duration):
            await asyncio.sleep(condition.seconds)
        elif isinstance(condition, Nothing):
            pass
        else:
            raise TypeError(f"Unknown readiness condition: {condition!r}")

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def image(self) -> Image:
        return self._image

    @property
    def cleanup(self) -> CleanupPolicy:
        return self._cleanup

    @property
    def state(self) -> ContainerState:
        return self._state

    @property
    def condition_index(self) -> Optional[int]:
        """Index of the condition being evaluated, None outside EVALUATING."""
        return self._condition_index

    @property
    def disposed(self) -> bool:
        return not self._finalizer.alive

    # -------------------------------------------------------------------------
    # Ports
    # -------------------------------------------------------------------------

    async def ports(self) -> Ports:
        """Fresh snapshot of the container's port mappings."""
        return await self._client.ports(self._id)

    async def get_host_port(
        self, internal: int, protocol: PortProtocol = PortProtocol.TCP
    ) -> int:
        """
        Host port the runtime mapped to `internal`.

        This does not publish anything; it looks up ports the image (or the
        run arguments) already exposed. Queries the runtime on every call.

        Raises:
            PortNotMappedError: The port has no host mapping
            RuntimeClientError: The runtime could not be queried
        """
        protocol = PortProtocol(protocol)
        ports = await self.ports()
        host_port = ports.map_to_host_port(internal, protocol)
        if host_port is None:
            raise PortNotMappedError(
                f"Container {self._id} does not expose port {internal}/{protocol.value}",
                sandbox_id=self._id,
                port=internal,
                protocol=protocol.value,
            )
        return host_port

    # -------------------------------------------------------------------------
    # Runtime operations
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        await self._client.start(self._id)

    async def stop(self) -> None:
        logger.debug("Stopping container %s", self._id)
        await self._client.stop(self._id)

    async def rm(self) -> None:
        """
        Remove the container now, propagating runtime errors.

        Counts as the container's disposal: nothing is issued afterwards.
        """
        self._finalizer.detach()
        self._state = ContainerState.DISPOSED
        logger.debug("Deleting container %s", self._id)
        await self._client.rm(self._id)

    # -------------------------------------------------------------------------
    # Disposal
    # -------------------------------------------------------------------------

    async def aclose(self) -> None:
        """Dispose per cleanup policy on the current loop. Idempotent."""
        if self._finalizer.detach() is None:
            return
        if self._state is not ContainerState.FAILED:
            self._state = ContainerState.DISPOSED
        await self._teardown.run()

    def close(self) -> None:
        """Dispose per cleanup policy, blocking until done. Idempotent."""
        if not self._finalizer.alive:
            return
        if self._state is not ContainerState.FAILED:
            self._state = ContainerState.DISPOSED
        self._finalizer()

    async def __aenter__(self) -> "Container":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<Container {self._id} image={self._image.descriptor()} "
            f"state={self._state.value} cleanup={self._cleanup.value}>"
        )
