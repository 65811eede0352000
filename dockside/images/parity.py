"""Parity Ethereum dev-chain descriptor."""
from __future__ import annotations

from dockside.models import Image, WaitFor

NAME = "parity/parity"
DEFAULT_TAG = "v2.2.9"
READY_MESSAGE = "Public node URL:"

# Single-node dev chain with every JSON-RPC API reachable from the host
DEFAULT_ARGS = (
    "--config=dev",
    "--jsonrpc-apis=all",
    "--unsafe-expose",
    "--tracing=on",
)


def parity_ethereum(tag: str = DEFAULT_TAG) -> Image:
    return Image(
        name=NAME,
        tag=tag,
        args=DEFAULT_ARGS,
        ready_conditions=(WaitFor.stderr(READY_MESSAGE),),
    )
