"""MongoDB descriptor."""
from __future__ import annotations

from dockside.models import Image, WaitFor

NAME = "mongo"
DEFAULT_TAG = "4.0.17"
READY_MESSAGE = "waiting for connections on port"


def mongo(tag: str = DEFAULT_TAG) -> Image:
    return Image(
        name=NAME,
        tag=tag,
        ready_conditions=(WaitFor.stdout(READY_MESSAGE),),
    )
