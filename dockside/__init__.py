"""
dockside - Throwaway containers for tests, ready when you get them.

Start a container, wait until it is actually ready, ask for its ports:

    from dockside import Runner, WaitFor, images

    async with Runner() as runner:
        mongo = await runner.run(images.mongo())
        port = await mongo.get_host_port(27017)

Describe your own image:

    from dockside import Image, WaitFor

    redis = (
        Image(name="redis", tag="7")
        .with_exposed_port(6379)
        .with_wait_for(WaitFor.stdout("Ready to accept connections", timeout=30))
    )

Synchronous teardown works too, for fixtures that cannot await:

    container = await Container.create(redis, client)
    ...
    container.close()  # blocks until stop+rm are done

Configuration via environment:
    DOCKSIDE_CLEANUP=keep      leave containers running for inspection
    DOCKSIDE_RUNTIME=http      talk to the Docker Engine socket directly
"""

from dockside.client import RuntimeClient  # noqa: F401
from dockside.clients import CliClient, ContainerRuntime, HttpClient  # noqa: F401
from dockside.config import Settings, default_client, get_settings  # noqa: F401
from dockside.container import Container, ContainerState  # noqa: F401
from dockside.exceptions import (  # noqa: F401
    DocksideConfigError,
    DocksideError,
    EndOfStreamError,
    PortNotMappedError,
    RunnerClosedError,
    RuntimeClientError,
    SandboxNotReadyError,
)
from dockside.logs import LogStream  # noqa: F401
from dockside.models import (  # noqa: F401
    CleanupPolicy,
    Duration,
    Image,
    LogMessage,
    LogSource,
    Nothing,
    Port,
    PortProtocol,
    RunArgs,
    WaitFor,
)
from dockside.ports import Ports  # noqa: F401
from dockside.runner import Runner  # noqa: F401
from dockside import images  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "CleanupPolicy",
    "CliClient",
    "Container",
    "ContainerRuntime",
    "ContainerState",
    "DocksideConfigError",
    "DocksideError",
    "Duration",
    "EndOfStreamError",
    "HttpClient",
    "Image",
    "LogMessage",
    "LogSource",
    "LogStream",
    "Nothing",
    "Port",
    "PortNotMappedError",
    "PortProtocol",
    "Ports",
    "RunArgs",
    "Runner",
    "RunnerClosedError",
    "RuntimeClient",
    "RuntimeClientError",
    "SandboxNotReadyError",
    "Settings",
    "WaitFor",
    "default_client",
    "get_settings",
    "images",
]
