"""
Declarative sandbox descriptors.

An Image describes what to run (image reference, arguments, environment,
volumes, exposed ports) and how to tell that it is ready (an ordered list of
readiness conditions). Descriptors are immutable: builder methods return
modified copies so one base descriptor can be shared between tests.

Usage:
    from dockside.models import Image, Port, WaitFor

    image = (
        Image(name="redis", tag="7")
        .with_exposed_port(6379)
        .with_wait_for(WaitFor.stdout("Ready to accept connections"))
    )
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class PortProtocol(str, Enum):
    """Transport protocol of an exposed port."""

    TCP = "tcp"
    UDP = "udp"
    SCTP = "sctp"


class CleanupPolicy(str, Enum):
    """
    What happens to a sandbox when its handle is disposed.

    REMOVE stops and removes the container. KEEP leaves it running for
    post-mortem inspection.
    """

    REMOVE = "remove"
    KEEP = "keep"


class LogSource(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class Port(BaseModel):
    """
    A container port to publish.

    local=None lets the runtime pick a free host port.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    internal: int = Field(ge=1, le=65535)
    local: Optional[int] = Field(default=None, ge=1, le=65535)
    protocol: PortProtocol = PortProtocol.TCP

    @classmethod
    def parse(cls, value: str) -> "Port":
        """Parse "80", "8080:80" or "8080:80/udp"."""
        spec, _, proto = value.partition("/")
        local, sep, internal = spec.rpartition(":")
        return cls(
            internal=int(internal),
            local=int(local) if sep else None,
            protocol=PortProtocol(proto or "tcp"),
        )

    def to_key(self) -> str:
        """Runtime notation for the internal side, e.g. "27017/tcp"."""
        return f"{self.internal}/{self.protocol.value}"


# =============================================================================
# Readiness conditions
# =============================================================================


class LogMessage(BaseModel):
    """Ready once `message` appears on the given output stream."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["log_message"] = "log_message"
    source: LogSource = LogSource.STDOUT
    message: str = Field(min_length=1)
    # Seconds to wait before giving up. None waits as long as the stream is open.
    timeout: Optional[float] = Field(default=None, gt=0)


class Duration(BaseModel):
    """Ready after a fixed delay."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["duration"] = "duration"
    seconds: float = Field(ge=0)


class Nothing(BaseModel):
    """Ready immediately."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["nothing"] = "nothing"


ReadyCondition = Annotated[
    Union[LogMessage, Duration, Nothing], Field(discriminator="kind")
]


class WaitFor:
    """Shorthand constructors for readiness conditions."""

    @staticmethod
    def stdout(message: str, timeout: Optional[float] = None) -> LogMessage:
        return LogMessage(source=LogSource.STDOUT, message=message, timeout=timeout)

    @staticmethod
    def stderr(message: str, timeout: Optional[float] = None) -> LogMessage:
        return LogMessage(source=LogSource.STDERR, message=message, timeout=timeout)

    @staticmethod
    def seconds(seconds: float) -> Duration:
        return Duration(seconds=seconds)

    @staticmethod
    def nothing() -> Nothing:
        return Nothing()


# =============================================================================
# Descriptors
# =============================================================================


class Image(BaseModel):
    """
    Sandbox descriptor: everything the runtime needs to start a container
    plus the conditions that mark it ready.

    Attributes:
        name: Image repository, e.g. "mongo" or "parity/parity"
        tag: Image tag
        args: Command arguments passed after the image reference
        env_vars: Environment variables set in the container
        volumes: Host path -> container path bind mounts
        ports: Ports to publish; empty publishes every port the image exposes
        ready_conditions: Evaluated in order, all must hold before use
        entrypoint: Optional entrypoint override
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    tag: str = "latest"
    args: Tuple[str, ...] = ()
    env_vars: Dict[str, str] = Field(default_factory=dict)
    volumes: Dict[str, str] = Field(default_factory=dict)
    ports: Tuple[Port, ...] = ()
    ready_conditions: Tuple[ReadyCondition, ...] = ()
    entrypoint: Optional[str] = None

    @classmethod
    def parse(cls, reference: str) -> "Image":
        """Build a bare descriptor from "name[:tag]"."""
        name, sep, tag = reference.rpartition(":")
        if not sep or "/" in tag:
            return cls(name=reference)
        return cls(name=name, tag=tag)

    def descriptor(self) -> str:
        """Image reference as understood by the runtime ("name:tag")."""
        return f"{self.name}:{self.tag}"

    def with_tag(self, tag: str) -> "Image":
        return self.model_copy(update={"tag": tag})

    def with_args(self, *args: str) -> "Image":
        return self.model_copy(update={"args": tuple(args)})

    def with_env_var(self, key: str, value: str) -> "Image":
        return self.model_copy(update={"env_vars": {**self.env_vars, key: value}})

    def with_volume(self, host_path: str, container_path: str) -> "Image":
        return self.model_copy(
            update={"volumes": {**self.volumes, host_path: container_path}}
        )

    def with_mapped_port(self, port: Port) -> "Image":
        return self.model_copy(update={"ports": self.ports + (port,)})

    def with_exposed_port(
        self, internal: int, protocol: PortProtocol = PortProtocol.TCP
    ) -> "Image":
        return self.with_mapped_port(Port(internal=internal, protocol=protocol))

    def with_wait_for(self, *conditions: ReadyCondition) -> "Image":
        """Append readiness conditions after the existing ones."""
        return self.model_copy(
            update={"ready_conditions": self.ready_conditions + tuple(conditions)}
        )

    def with_entrypoint(self, entrypoint: str) -> "Image":
        return self.model_copy(update={"entrypoint": entrypoint})


class RunArgs(BaseModel):
    """Per-run overrides applied on top of an Image."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Optional[str] = None
    network: Optional[str] = None
    ports: Tuple[Port, ...] = ()

    def with_name(self, name: str) -> "RunArgs":
        return self.model_copy(update={"name": name})

    def with_network(self, network: str) -> "RunArgs":
        return self.model_copy(update={"network": network})

    def with_mapped_port(self, port: Port) -> "RunArgs":
        return self.model_copy(update={"ports": self.ports + (port,)})
