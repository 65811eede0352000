"""
Runtime clients: concrete RuntimeClient implementations.

- CliClient: drives the docker/podman command line
- HttpClient: talks to the Docker Engine API over its unix socket
"""
from dockside.clients.detect import (
    ContainerRuntime,
    detect_runtime,
    get_runtime_command,
)
from dockside.clients.cli import CliClient
from dockside.clients.http import HttpClient

__all__ = [
    "ContainerRuntime",
    "detect_runtime",
    "get_runtime_command",
    "CliClient",
    "HttpClient",
]
