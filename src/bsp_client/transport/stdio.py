"""Build-server subprocess transport over stdin/stdout."""

from __future__ import annotations

import asyncio
import os
import platform
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from bsp_client.config import ShutdownConfig
from bsp_client.errors import ConnectionClosedError
from bsp_client.logging import TRACE, get_logger
from bsp_client.transport.base import CloseSink, MessageSink
from bsp_client.transport.framing import (
    DEFAULT_MAX_MESSAGE_SIZE,
    FramingError,
    MessageDecodeError,
    read_message,
    write_message,
)

log = get_logger("transport")

# Windows-specific subprocess creation flags
_WINDOWS = platform.system() == "Windows"
_CREATE_NEW_PROCESS_GROUP = 0x00000200 if _WINDOWS else 0


def _send_interrupt(process: asyncio.subprocess.Process) -> None:
    """Send interrupt signal to process (Ctrl-Break on Windows, SIGINT on Unix)."""
    if _WINDOWS:
        try:
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)  # type: ignore[attr-defined]
        except OSError:
            process.terminate()
    else:
        try:
            os.kill(process.pid, signal.SIGINT)
        except OSError:
            process.terminate()


async def graceful_shutdown(
    process: asyncio.subprocess.Process,
    interrupt_timeout: float = 2.0,
    terminate_timeout: float = 3.0,
) -> None:
    """Stop a process: interrupt, then terminate, then kill.

    Args:
        process: The subprocess to shut down
        interrupt_timeout: Seconds to wait after sending interrupt signal
        terminate_timeout: Seconds to wait after sending terminate signal
    """
    if process.returncode is not None:
        return

    _send_interrupt(process)
    try:
        await asyncio.wait_for(process.wait(), timeout=interrupt_timeout)
        return
    except asyncio.TimeoutError:
        pass

    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=terminate_timeout)
        return
    except asyncio.TimeoutError:
        pass

    log.warning("Build server pid %d ignored SIGTERM, killing", process.pid)
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


class StdioTransport:
    """JSON-RPC transport to a build-server subprocess.

    Frames are read by a background listener task and handed to the
    engine one message per batch, in the order the server wrote them.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        shutdown: ShutdownConfig | None = None,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        if process.stdin is None or process.stdout is None:
            raise ValueError("Process must have stdin and stdout pipes")
        self._process = process
        self._reader: asyncio.StreamReader = process.stdout
        self._writer: asyncio.StreamWriter = process.stdin
        self._shutdown = shutdown or ShutdownConfig()
        self._max_message_size = max_message_size
        self._write_lock = asyncio.Lock()
        self._listener: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    async def spawn(
        cls,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        shutdown: ShutdownConfig | None = None,
    ) -> StdioTransport:
        """Start the build server and wrap its stdio."""
        if not argv:
            raise ValueError("Empty build server command")

        log.info("Spawning build server: %s", " ".join(argv))
        # New process group on Windows so Ctrl+Break can reach it
        process = await asyncio.create_subprocess_exec(
            argv[0],
            *argv[1:],
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=sys.stderr,
            cwd=str(cwd) if cwd is not None else None,
            creationflags=_CREATE_NEW_PROCESS_GROUP,  # type: ignore[arg-type]
        )
        log.debug("Build server started with pid %d", process.pid)
        return cls(process, shutdown=shutdown)

    @property
    def process(self) -> asyncio.subprocess.Process:
        return self._process

    async def open(self, on_messages: MessageSink, on_closed: CloseSink) -> None:
        if self._listener is not None:
            return
        self._listener = asyncio.create_task(
            self._listen(on_messages, on_closed), name="bsp-transport-listener"
        )

    async def write(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionResetError("transport is closed")
        log.log(TRACE, "--> %s", message)
        async with self._write_lock:
            await write_message(self._writer, message)

    async def _listen(self, on_messages: MessageSink, on_closed: CloseSink) -> None:
        reason: BaseException
        while True:
            try:
                message = await read_message(
                    self._reader, max_message_size=self._max_message_size
                )
            except MessageDecodeError as e:
                log.warning("Skipping undecodable message from build server: %s", e)
                continue
            except FramingError as e:
                log.error("Lost framing on build server output: %s", e)
                reason = ConnectionClosedError(f"build server stream is corrupt: {e}")
                break
            except OSError as e:
                reason = ConnectionClosedError(f"build server pipe failed: {e}")
                break

            if message is None:
                log.info("Build server closed its output stream")
                reason = ConnectionClosedError("build server closed the connection")
                break

            log.log(TRACE, "<-- %s", message)
            await on_messages([message])

        await on_closed(reason)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass

        await graceful_shutdown(
            self._process,
            interrupt_timeout=self._shutdown.interrupt_timeout,
            terminate_timeout=self._shutdown.terminate_timeout,
        )
        log.debug("Build server exited with code %s", self._process.returncode)
