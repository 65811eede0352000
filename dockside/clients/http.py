"""
Docker Engine API runtime client.

Talks to the engine over its unix socket with httpx. Each operation opens
its own AsyncClient, so nothing is bound to the event loop that created the
RuntimeClient; teardown may run on a different loop than creation.

Usage:
    client = HttpClient("/var/run/docker.sock")
    container = await Container.create(image, client)
"""

from __future__ import annotations

import json
import logging
import struct
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Tuple

import httpx

from dockside.client import RuntimeClient
from dockside.exceptions import RuntimeClientError
from dockside.logs import LogStream
from dockside.models import Image, LogSource, RunArgs
from dockside.ports import Ports

logger = logging.getLogger(__name__)

DEFAULT_SOCKET = "/var/run/docker.sock"
API_VERSION = "v1.41"

# Stream ids in the multiplexed log framing
_STREAM_IDS = {LogSource.STDOUT: 1, LogSource.STDERR: 2}
_HEADER = struct.Struct(">BxxxI")


class FrameDecoder:
    """
    Incremental decoder for the engine's multiplexed log stream.

    Each frame is an 8-byte header (stream id, three padding bytes, big-endian
    payload length) followed by the payload. Only the current partial frame
    is buffered.
    """

    def __init__(self) -> None:
        self._buffer = b""

    def feed(self, data: bytes) -> Iterator[Tuple[int, bytes]]:
        self._buffer += data
        while len(self._buffer) >= _HEADER.size:
            stream_id, size = _HEADER.unpack_from(self._buffer)
            end = _HEADER.size + size
            if len(self._buffer) < end:
                break
            payload = self._buffer[_HEADER.size:end]
            self._buffer = self._buffer[end:]
            yield stream_id, payload


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.text
    except (ValueError, AttributeError):
        return response.text


class HttpClient(RuntimeClient):
    """
    Runtime client for the Docker Engine HTTP API.

    Args:
        socket_path: Engine unix socket
        base_url: Host part of request URLs (ignored by the socket transport)
        api_version: Engine API version prefix
        timeout: Per-request timeout in seconds; log follows never time out
        transport: Replacement transport, e.g. httpx.MockTransport in tests
    """

    def __init__(
        self,
        socket_path: str = DEFAULT_SOCKET,
        *,
        base_url: str = "http://docker",
        api_version: str = API_VERSION,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._socket_path = socket_path
        self._base_url = f"{base_url.rstrip('/')}/{api_version}"
        self._timeout = timeout
        self._transport = transport

    def _client(self, timeout: Optional[httpx.Timeout] = None) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(uds=self._socket_path)
        return httpx.AsyncClient(
            transport=transport,
            base_url=self._base_url,
            timeout=timeout or httpx.Timeout(self._timeout),
        )

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        container_id: Optional[str] = None,
        timeout: Optional[httpx.Timeout] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        async with self._client(timeout) as client:
            try:
                return await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                raise RuntimeClientError(
                    f"Docker API unreachable at {self._socket_path}: {e}",
                    operation=operation,
                    sandbox_id=container_id,
                ) from e

    def _check(
        self,
        operation: str,
        response: httpx.Response,
        container_id: Optional[str] = None,
        missing_ok: bool = False,
    ) -> bool:
        """True when the call did something, False for a tolerated no-op."""
        if response.status_code == 304:
            return False
        if response.status_code == 404 and missing_ok:
            logger.debug("Container %s already gone (%s)", container_id, operation)
            return False
        if response.is_error:
            raise RuntimeClientError(
                f"Docker API {operation} failed: {_error_message(response)}",
                operation=operation,
                sandbox_id=container_id,
                status_code=response.status_code,
            )
        return True

    def create_body(
        self, image: Image, run_args: Optional[RunArgs] = None
    ) -> Dict[str, Any]:
        """Request body of POST /containers/create for `image`."""
        ports = image.ports + (run_args.ports if run_args is not None else ())
        exposed: Dict[str, Dict[str, Any]] = {}
        bindings: Dict[str, List[Dict[str, str]]] = {}
        for port in ports:
            key = port.to_key()
            exposed[key] = {}
            bindings.setdefault(key, []).append(
                {"HostPort": str(port.local) if port.local else ""}
            )

        host_config: Dict[str, Any] = {
            # Nothing declared: publish every port the image exposes
            "PublishAllPorts": not ports,
            "PortBindings": bindings,
            "Binds": [f"{host}:{target}" for host, target in image.volumes.items()],
        }
        if run_args is not None and run_args.network:
            host_config["NetworkMode"] = run_args.network

        body: Dict[str, Any] = {
            "Image": image.descriptor(),
            "Env": [f"{key}={value}" for key, value in image.env_vars.items()],
            "ExposedPorts": exposed,
            "HostConfig": host_config,
        }
        if image.args:
            body["Cmd"] = list(image.args)
        if image.entrypoint:
            body["Entrypoint"] = [image.entrypoint]
        return body

    async def _pull(self, image: Image) -> None:
        logger.info("Pulling image %s", image.descriptor())
        response = await self._send(
            "pull",
            "POST",
            "/images/create",
            params={"fromImage": image.name, "tag": image.tag},
            timeout=httpx.Timeout(self._timeout, read=None),
        )
        self._check("pull", response)
        # Pull reports failures inside its 200 progress stream
        for line in response.text.splitlines():
            try:
                event = json.loads(line)
            except ValueError:
                continue
            if isinstance(event, dict) and event.get("error"):
                raise RuntimeClientError(
                    f"Failed to pull {image.descriptor()}: {event['error']}",
                    operation="pull",
                )

    async def create_and_start(
        self, image: Image, run_args: Optional[RunArgs] = None
    ) -> str:
        body = self.create_body(image, run_args)
        params = {"name": run_args.name} if run_args is not None and run_args.name else None

        response = await self._send(
            "create", "POST", "/containers/create", json=body, params=params
        )
        if response.status_code == 404:
            # Image not present locally
            await self._pull(image)
            response = await self._send(
                "create", "POST", "/containers/create", json=body, params=params
            )
        self._check("create", response)

        container_id = response.json()["Id"]
        try:
            await self.start(container_id)
        except BaseException:
            # The caller never sees this id, so nobody else can remove it
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
        response = await self._send(
            "start", "POST", f"/containers/{container_id}/start",
            container_id=container_id,
        )
        self._check("start", response, container_id)

    async def stop(self, container_id: str) -> None:
        response = await self._send(
            "stop", "POST", f"/containers/{container_id}/stop",
            container_id=container_id,
            timeout=httpx.Timeout(self._timeout, read=None),
        )
        self._check("stop", response, container_id, missing_ok=True)

    async def rm(self, container_id: str) -> None:
        response = await self._send(
            "rm", "DELETE", f"/containers/{container_id}",
            container_id=container_id,
            params={"force": "true", "v": "true"},
        )
        self._check("rm", response, container_id, missing_ok=True)

    def stdout_logs(self, container_id: str) -> LogStream:
        return LogStream(self._follow(container_id, LogSource.STDOUT), LogSource.STDOUT)

    def stderr_logs(self, container_id: str) -> LogStream:
        return LogStream(self._follow(container_id, LogSource.STDERR), LogSource.STDERR)

    async def _follow(self, container_id: str, source: LogSource) -> AsyncIterator[bytes]:
        """Payloads of one stream from a following logs request."""
        params = {
            "follow": "true",
            "stdout": "true" if source is LogSource.STDOUT else "false",
            "stderr": "true" if source is LogSource.STDERR else "false",
        }
        wanted = _STREAM_IDS[source]
        decoder = FrameDecoder()

        async with self._client(httpx.Timeout(self._timeout, read=None)) as client:
            try:
                async with client.stream(
                    "GET", f"/containers/{container_id}/logs", params=params
                ) as response:
                    if response.is_error:
                        await response.aread()
                        self._check("logs", response, container_id)
                    async for data in response.aiter_bytes():
                        for stream_id, payload in decoder.feed(data):
                            if stream_id == wanted:
                                yield payload
            except httpx.HTTPError as e:
                raise RuntimeClientError(
                    f"Docker API unreachable at {self._socket_path}: {e}",
                    operation="logs",
                    sandbox_id=container_id,
                ) from e

    async def ports(self, container_id: str) -> Ports:
        response = await self._send(
            "inspect", "GET", f"/containers/{container_id}/json",
            container_id=container_id,
        )
        self._check("inspect", response, container_id)
        return Ports.from_inspect(response.json())
