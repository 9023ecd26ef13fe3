"""Contract between the protocol engine and a byte transport."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

MessageSink = Callable[[Sequence[Any]], Awaitable[None]]
"""Receives a batch of decoded inbound messages, in arrival order."""

CloseSink = Callable[[BaseException], Awaitable[None]]
"""Told once, with the reason, when the transport can no longer read."""


class Transport(Protocol):
    """A bidirectional message channel to a build server.

    The engine is the only writer; the transport's own listener is the
    only reader and hands what it decodes to the sinks given to open().
    """

    async def open(self, on_messages: MessageSink, on_closed: CloseSink) -> None:
        """Start delivering inbound messages."""
        ...

    async def write(self, message: dict[str, Any]) -> None:
        """Send one outbound message.

        Raises:
            OSError: If the build server is gone.
        """
        ...

    async def close(self) -> None:
        """Stop the listener and release the underlying channel."""
        ...
