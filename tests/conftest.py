"""Root pytest configuration for all tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from bsp_client.engine import BuildClient
from bsp_client.transport.base import CloseSink, MessageSink

FIXTURES = Path(__file__).parent / "fixtures"
FAKE_SERVER = FIXTURES / "fake_bsp_server.py"


class FakeTransport:
    """In-memory transport that records outbound messages.

    Tests play the build server by calling deliver() and lose().
    """

    def __init__(self) -> None:
        self.written: list[dict[str, Any]] = []
        self.sent: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.on_messages: MessageSink | None = None
        self.on_closed: CloseSink | None = None
        self.write_error: BaseException | None = None
        self.closed = False

    async def open(self, on_messages: MessageSink, on_closed: CloseSink) -> None:
        self.on_messages = on_messages
        self.on_closed = on_closed

    async def write(self, message: dict[str, Any]) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(message)
        self.sent.put_nowait(message)

    async def close(self) -> None:
        self.closed = True

    async def next_sent(self, timeout: float = 1.0) -> dict[str, Any]:
        """Wait for the next message the client writes."""
        return await asyncio.wait_for(self.sent.get(), timeout)

    async def deliver(self, *messages: Any) -> None:
        assert self.on_messages is not None, "transport was never opened"
        await self.on_messages(list(messages))

    async def lose(self, reason: BaseException) -> None:
        assert self.on_closed is not None, "transport was never opened"
        await self.on_closed(reason)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest_asyncio.fixture
async def client(transport: FakeTransport):
    """A started BuildClient wired to a FakeTransport."""
    bsp = BuildClient(transport)
    await bsp.start()
    yield bsp
    await bsp.stop()


@pytest.fixture
def fake_server_argv() -> list[str]:
    return [sys.executable, str(FAKE_SERVER)]


@pytest.fixture
def make_transport():
    """Factory for extra FakeTransports."""
    return FakeTransport
