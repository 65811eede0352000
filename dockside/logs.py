"""
Log stream matching.

A LogStream wraps the live output of one container stream (stdout or
stderr) as an async iterator of byte chunks. wait_for_message() consumes it
until the awaited text shows up, keeping only the few trailing bytes needed
to catch a match split across two chunks, so arbitrarily long or chatty logs
never accumulate in memory.

Usage:
    async with client.stdout_logs(container_id) as stream:
        await stream.wait_for_message("waiting for connections")
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional

from dockside.exceptions import EndOfStreamError
from dockside.models import LogSource

logger = logging.getLogger(__name__)


class LogStream:
    """
    One container output stream.

    The stream is single-consumer: successive wait_for_message() calls read
    from the same underlying iterator and pick up where the previous one stopped.
    Always close it (aclose() or `async with`) so the runtime-side follower
    (a `logs -f` process or an HTTP response) is released.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        source: LogSource = LogSource.STDOUT,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._chunks = chunks
        self._source = source
        self._on_close = on_close
        self._closed = False

    @classmethod
    def buffered(
        cls, chunks: Iterable[bytes], source: LogSource = LogSource.STDOUT
    ) -> "LogStream":
        """Stream over output that has already been captured."""

        async def _gen() -> AsyncIterator[bytes]:
            for chunk in chunks:
                yield chunk

        return cls(_gen(), source)

    @property
    def source(self) -> LogSource:
        return self._source

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_for_message(self, message: str) -> int:
        """
        Consume the stream until `message` appears.

        Returns:
            Number of lines compared, counting the one that matched.

        Raises:
            EndOfStreamError: The stream ended without the message.
        """
        needle = message.encode("utf-8")
        keep = len(needle) - 1
        tail = b""
        lines = 0

        async for chunk in self._chunks:
            if not chunk:
                continue
            window = tail + chunk
            found = window.find(needle)
            if found != -1:
                lines += chunk.count(b"\n", 0, max(found - len(tail), 0)) + 1
                logger.debug(
                    "Found %r on %s after comparing %d lines",
                    message,
                    self._source.value,
                    lines,
                )
                return lines
            lines += chunk.count(b"\n")
            tail = window[-keep:] if keep else b""

        logger.debug(
            "%s ended after %d lines without %r", self._source.value, lines, message
        )
        raise EndOfStreamError(
            f"{self._source.value} ended before {message!r} appeared",
            message_sought=message,
            lines_compared=lines,
        )

    async def aclose(self) -> None:
        """Release the underlying stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            close = getattr(self._chunks, "aclose", None)
            if close is not None:
                await close()
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def __aenter__(self) -> "LogStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<LogStream {self._source.value} {state}>"
