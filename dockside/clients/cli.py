"""
CLI-backed runtime client.

Drives the `docker` or `podman` command line through asyncio subprocesses.
Every operation spawns its own process, so the client carries no loop-bound
state and can be shared freely between containers and event loops.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional

from dockside.client import RuntimeClient
from dockside.clients.detect import ContainerRuntime, detect_runtime, get_runtime_command
from dockside.exceptions import RuntimeClientError
from dockside.logs import LogStream
from dockside.models import Image, LogSource, RunArgs
from dockside.ports import Ports

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def _is_missing(stderr: str) -> bool:
    return "no such container" in stderr.lower()


class CliClient(RuntimeClient):
    """
    Runtime client for the Docker or Podman CLI.

    The runtime is auto-detected on first use unless given explicitly.
    """

    def __init__(self, runtime: Optional[ContainerRuntime] = None) -> None:
        self._runtime = runtime

    @property
    def runtime(self) -> ContainerRuntime:
        if self._runtime is None:
            self._runtime = detect_runtime()
        return self._runtime

    def _command(self) -> str:
        return get_runtime_command(self.runtime)

    async def _exec(
        self,
        operation: str,
        *args: str,
        container_id: Optional[str] = None,
        missing_ok: bool = False,
    ) -> str:
        cmd = [self._command(), *args]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RuntimeClientError(
                f"Failed to run {cmd[0]}: {e}",
                operation=operation,
                sandbox_id=container_id,
            ) from e

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            error = stderr.decode(errors="replace").strip()
            if missing_ok and _is_missing(error):
                logger.debug("Container %s already gone (%s)", container_id, operation)
                return ""
            raise RuntimeClientError(
                f"{cmd[0]} {operation} failed: {error}",
                operation=operation,
                sandbox_id=container_id,
                status_code=proc.returncode,
                details={"stderr": error[:1000]},
            )
        return stdout.decode(errors="replace")

    def create_command(self, image: Image, run_args: Optional[RunArgs] = None) -> List[str]:
        """Arguments of the `create` invocation for `image` (without the CLI name)."""
        args = ["create"]
        if run_args is not None and run_args.name:
            args += ["--name", run_args.name]
        if run_args is not None and run_args.network:
            args += ["--network", run_args.network]
        for key, value in image.env_vars.items():
            args += ["-e", f"{key}={value}"]
        for host_path, container_path in image.volumes.items():
            args += ["-v", f"{host_path}:{container_path}"]

        ports = image.ports + (run_args.ports if run_args is not None else ())
        if ports:
            for port in ports:
                if port.local is None:
                    args += ["-p", port.to_key()]
                else:
                    args += ["-p", f"{port.local}:{port.to_key()}"]
        else:
            # Nothing declared: publish every port the image exposes
            args.append("-P")

        if image.entrypoint:
            args += ["--entrypoint", image.entrypoint]
        args.append(image.descriptor())
        args.extend(image.args)
        return args

    async def create_and_start(
        self, image: Image, run_args: Optional[RunArgs] = None
    ) -> str:
        # create and start are separate calls so a start failure still has an id to remove
        output = await self._exec("create", *self.create_command(image, run_args))
        lines = output.strip().splitlines()
        if not lines:
            raise RuntimeClientError(
                f"{self._command()} create printed no container id for {image.descriptor()}",
                operation="create",
            )
        container_id = lines[-1].strip()

        try:
            await self.start(container_id)
        except BaseException:
            await self._discard(container_id)
            raise
        return container_id

    async def _discard(self, container_id: str) -> None:
        logger.debug("Removing container %s after failed start", container_id)
        try:
            await self.rm(container_id)
        except RuntimeClientError as e:
            logger.error("Failed to remove container %s: %s", container_id, e)

    async def start(self, container_id: str) -> None:
        await self._exec("start", "start", container_id, container_id=container_id)

    async def stop(self, container_id: str) -> None:
        await self._exec(
            "stop", "stop", container_id, container_id=container_id, missing_ok=True
        )

    async def rm(self, container_id: str) -> None:
        await self._exec(
            "rm", "rm", "-f", "-v", container_id,
            container_id=container_id,
            missing_ok=True,
        )

    def stdout_logs(self, container_id: str) -> LogStream:
        return LogStream(self._follow(container_id, LogSource.STDOUT), LogSource.STDOUT)

    def stderr_logs(self, container_id: str) -> LogStream:
        return LogStream(self._follow(container_id, LogSource.STDERR), LogSource.STDERR)

    async def _follow(self, container_id: str, source: LogSource) -> AsyncIterator[bytes]:
        """Chunks of `logs -f` for one stream; the process dies with the generator."""
        wanted = asyncio.subprocess.PIPE
        ignored = asyncio.subprocess.DEVNULL
        cmd = [self._command(), "logs", "-f", container_id]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=wanted if source is LogSource.STDOUT else ignored,
                stderr=wanted if source is LogSource.STDERR else ignored,
            )
        except OSError as e:
            raise RuntimeClientError(
                f"Failed to run {cmd[0]}: {e}",
                operation="logs",
                sandbox_id=container_id,
            ) from e

        pipe = proc.stdout if source is LogSource.STDOUT else proc.stderr
        try:
            if pipe is None:
                raise RuntimeClientError(
                    f"{cmd[0]} logs produced no {source.value} pipe",
                    operation="logs",
                    sandbox_id=container_id,
                )
            while True:
                chunk = await pipe.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
            await proc.wait()
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

    async def ports(self, container_id: str) -> Ports:
        output = await self._exec(
            "inspect", "inspect", container_id, container_id=container_id
        )
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as e:
            raise RuntimeClientError(
                f"Unreadable inspect output for {container_id}: {e}",
                operation="inspect",
                sandbox_id=container_id,
            ) from e
        if not payload:
            raise RuntimeClientError(
                f"Empty inspect output for {container_id}",
                operation="inspect",
                sandbox_id=container_id,
            )
        return Ports.from_inspect(payload[0])
