"""Protocol engine: the single owner of a build-server connection.

All connection state (the id counter, the pending request table and the
inbound buffers) belongs to one worker task. Public methods enqueue an
operation for that worker and await its completion, and the transport's
listener hands inbound batches over the same queue, so no two operations
ever observe the state at the same time.

Requests that expect a reply hand the caller a future from the pending
table. The caller awaits it outside the worker, which keeps serving other
operations and inbound messages meanwhile.

Usage:
    descriptor = discover(root_uri)
    async with await BuildClient.connect(descriptor) as client:
        response = await client.initialize(root_uri)
        await client.initialized(root_uri)
        ...
        await client.shutdown()
        await client.exit()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

from bsp_client.config import ClientConfig
from bsp_client.errors import (
    BSPClientError,
    ConnectionClosedError,
    EngineStoppedError,
    MalformedMessageError,
    RequestTimeoutError,
)
from bsp_client.logging import get_logger
from bsp_client.protocol.messages import (
    Notification,
    Response,
    ServerRequest,
    classify,
    notification,
    request,
)
from bsp_client.protocol.pending import PendingRequestTable
from bsp_client.protocol.types import (
    BuildClientCapabilities,
    ConnectionDescriptor,
    InitializeBuildParams,
    TextDocumentIdentifier,
    TextDocumentItem,
)
from bsp_client.transport.base import Transport
from bsp_client.transport.framing import FramingError
from bsp_client.transport.stdio import StdioTransport
from bsp_client.uri import path_to_uri

log = get_logger("engine")

T = TypeVar("T")

METHOD_INITIALIZE = "build/initialize"
METHOD_INITIALIZED = "build/initialized"
METHOD_SHUTDOWN = "shutdown"
METHOD_EXIT = "exit"
METHOD_SHOW_MESSAGE = "build/showMessage"
METHOD_LOG_MESSAGE = "build/logMessage"
METHOD_PUBLISH_DIAGNOSTICS = "build/publishDiagnostics"

_Operation = tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]


def notification_params(params: Any) -> dict[str, Any]:
    """Shape the params of a document notification.

    A mapping is sent as-is and a string is taken as a document uri. A
    TextDocumentIdentifier or TextDocumentItem is sent as the textDocument.
    Anything else sends {}.
    """
    if isinstance(params, str):
        params = TextDocumentIdentifier(uri=params)
    if isinstance(params, (TextDocumentIdentifier, TextDocumentItem)):
        return {"textDocument": params.model_dump(by_alias=True)}
    if isinstance(params, Mapping):
        return dict(params)
    return {}


class BuildClient:
    """Client side of a BSP connection.

    Args:
        transport: Channel to the build server. The client owns it and
            closes it on stop().
        config: Client identity, deadlines and shutdown behaviour.
    """

    def __init__(self, transport: Transport, config: ClientConfig | None = None) -> None:
        self._transport = transport
        self._config = config or ClientConfig()

        # Worker-owned state
        self._next_id = 1
        self._pending = PendingRequestTable()
        self._notifications: list[Notification] = []
        self._server_requests: list[ServerRequest] = []
        self._deadlines: dict[int, asyncio.TimerHandle] = {}
        self._closed = False
        self._close_reason: ConnectionClosedError | None = None
        self._exit_sent = False
        self.unmatched_responses = 0
        self.malformed_messages = 0

        self._ops: asyncio.Queue[_Operation | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._accepting = False

    @classmethod
    async def connect(
        cls,
        descriptor: ConnectionDescriptor,
        config: ClientConfig | None = None,
        *,
        cwd: str | Path | None = None,
    ) -> BuildClient:
        """Spawn the build server named by descriptor and start a client for it."""
        config = config or ClientConfig()
        transport = await StdioTransport.spawn(descriptor.argv, cwd=cwd, shutdown=config.shutdown)
        client = cls(transport, config)
        try:
            await client.start()
        except BaseException:
            await transport.close()
            raise
        return client

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._accepting and not self._closed

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._worker is not None:
            return
        if self._closed:
            raise EngineStoppedError("client has been stopped")
        self._worker = asyncio.create_task(self._run(), name="bsp-client-engine")
        self._accepting = True
        await self._transport.open(self.deliver_inbound, self.connection_lost)
        log.debug("Engine started")

    async def stop(self) -> None:
        """Fail outstanding calls, stop the worker and close the transport."""
        if self._worker is None or not self._accepting:
            return
        await self._submit(self._stop_state)
        self._accepting = False
        self._ops.put_nowait(None)
        await self._worker
        self._worker = None
        await self._transport.close()
        log.debug("Engine stopped")

    async def __aenter__(self) -> BuildClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.stop()

    # -------------------------------------------------------------------------
    # Server lifetime
    # -------------------------------------------------------------------------

    def build_initialize_params(self, root_uri: str) -> InitializeBuildParams:
        client = self._config.client
        return InitializeBuildParams(
            display_name=client.display_name,
            version=client.version,
            bsp_version=client.bsp_version,
            root_uri=root_uri,
            capabilities=BuildClientCapabilities(language_ids=list(client.language_ids)),
        )

    async def initialize(self, root_uri: str | Path, *, timeout: float | None = None) -> Response:
        """Send build/initialize and wait for the server's reply.

        The reply is returned as received, whether it holds a result or an
        error. Without a timeout (here or in config) this waits forever.

        Raises:
            ConnectionClosedError: If the connection fails first.
            RequestTimeoutError: If the deadline passes first.
        """
        if isinstance(root_uri, Path):
            root_uri = path_to_uri(root_uri)
        log.info("Initializing build server for %s", root_uri)
        params = self.build_initialize_params(root_uri).model_dump(by_alias=True)
        return await self._call(METHOD_INITIALIZE, params, timeout)

    async def initialized(self, document_uri: str) -> None:
        params = notification_params(TextDocumentIdentifier(uri=document_uri))
        await self._submit(lambda: self._send_notification(METHOD_INITIALIZED, params))

    async def shutdown(self, *, timeout: float | None = None) -> Response:
        """Send shutdown and wait for the server's reply."""
        log.info("Requesting build server shutdown")
        return await self._call(METHOD_SHUTDOWN, {}, timeout)

    async def exit(self) -> None:
        """Tell the server to exit. Returns as soon as the message is written.

        By default exit is framed as a request and consumes an id, but no
        reply is awaited; a reply, if any, is counted as unmatched.
        """
        await self._submit(self._send_exit)

    async def show_message(self, params: Any) -> None:
        await self._notify_best_effort(METHOD_SHOW_MESSAGE, params)

    async def log_message(self, params: Any) -> None:
        await self._notify_best_effort(METHOD_LOG_MESSAGE, params)

    async def publish_diagnostics(self, params: Any) -> None:
        await self._notify_best_effort(METHOD_PUBLISH_DIAGNOSTICS, params)

    # -------------------------------------------------------------------------
    # Transport callbacks
    # -------------------------------------------------------------------------

    async def deliver_inbound(self, batch: Sequence[Any]) -> None:
        """Process a batch of decoded inbound messages, in order."""
        if not self._accepting:
            log.debug("Ignoring %d inbound message(s) after stop", len(batch))
            return
        messages = list(batch)
        await self._submit(lambda: self._handle_batch(messages))

    async def connection_lost(self, reason: BaseException) -> None:
        """Fail every pending call together and refuse further operations."""
        if not self._accepting:
            return
        if not isinstance(reason, ConnectionClosedError):
            closed = ConnectionClosedError(str(reason) or type(reason).__name__)
            closed.__cause__ = reason
            reason = closed
        await self._submit(lambda: self._lose_connection(reason))

    # -------------------------------------------------------------------------
    # Buffers and diagnostics
    # -------------------------------------------------------------------------

    async def drain_notifications(self) -> list[Notification]:
        """Return and clear buffered notifications, oldest first."""
        return await self._submit(self._take_notifications)

    async def drain_server_requests(self) -> list[ServerRequest]:
        """Return and clear buffered server requests, oldest first.

        Nothing answers these; the server gets no reply unless the caller
        arranges one.
        """
        return await self._submit(self._take_server_requests)

    async def pending_count(self) -> int:
        return await self._submit(self._count_pending)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _enqueue(self, handler: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        done: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._ops.put_nowait((handler, done))
        return done

    async def _submit(self, handler: Callable[[], Awaitable[T]]) -> T:
        if not self._accepting:
            raise EngineStoppedError("client is not running")
        return await self._enqueue(handler)

    async def _run(self) -> None:
        while True:
            item = await self._ops.get()
            if item is None:
                return
            handler, done = item
            try:
                result = await handler()
            except Exception as e:
                if done.done():
                    log.warning("Operation failed after its caller went away: %s", e)
                else:
                    done.set_exception(e)
            else:
                if not done.done():
                    done.set_result(result)
                elif isinstance(result, asyncio.Future):
                    # Caller left before it got its reply handle
                    result.cancel()

    def _ensure_open(self) -> None:
        if self._closed:
            raise self._close_reason or ConnectionClosedError("connection is closed")

    def _allocate_id(self) -> int:
        request_id = self._next_id
        self._next_id += 1
        return request_id

    def _close(self, reason: ConnectionClosedError) -> None:
        if not self._closed:
            self._closed = True
            self._close_reason = reason
        for timer in self._deadlines.values():
            timer.cancel()
        self._deadlines.clear()
        failed = self._pending.fail_all(reason)
        if failed:
            log.warning("Failed %d pending request(s): %s", failed, reason)

    async def _write(self, message: dict[str, Any]) -> None:
        try:
            await self._transport.write(message)
        except OSError as e:
            reason = ConnectionClosedError(f"failed to write {message.get('method')}: {e}")
            reason.__cause__ = e
            self._close(reason)
            raise reason from e

    async def _call(self, method: str, params: Any, timeout: float | None) -> Response:
        handle = await self._submit(lambda: self._send_request(method, params, timeout))
        return await handle

    async def _send_request(
        self, method: str, params: Any, timeout: float | None
    ) -> asyncio.Future[Response]:
        self._ensure_open()
        request_id = self._allocate_id()
        loop = asyncio.get_running_loop()
        handle: asyncio.Future[Response] = loop.create_future()
        self._pending.reserve(request_id, handle)

        try:
            await self._write(request(request_id, method, params))
        except FramingError:
            self._pending.discard(request_id)
            raise
        except ConnectionClosedError:
            # _close already failed the handle
            return handle

        if timeout is None:
            timeout = self._config.request_timeout
        if timeout is not None:
            self._deadlines[request_id] = loop.call_later(
                timeout, self._expire_later, request_id, method, timeout
            )
        handle.add_done_callback(lambda f: self._on_handle_done(request_id, f))
        log.debug("Sent %s (id=%d)", method, request_id)
        return handle

    def _on_handle_done(self, request_id: int, handle: asyncio.Future[Response]) -> None:
        if handle.cancelled() and self._accepting:
            self._enqueue(lambda: self._forget(request_id))

    async def _forget(self, request_id: int) -> None:
        timer = self._deadlines.pop(request_id, None)
        if timer is not None:
            timer.cancel()
        if self._pending.discard(request_id):
            log.debug("Caller abandoned request id=%d", request_id)

    def _expire_later(self, request_id: int, method: str, timeout: float) -> None:
        if self._accepting:
            self._enqueue(lambda: self._expire(request_id, method, timeout))

    async def _expire(self, request_id: int, method: str, timeout: float) -> None:
        self._deadlines.pop(request_id, None)
        if self._pending.fail(request_id, RequestTimeoutError(request_id, method, timeout)):
            log.warning("%s (id=%d) timed out after %gs", method, request_id, timeout)

    async def _send_notification(self, method: str, params: Any) -> None:
        self._ensure_open()
        await self._write(notification(method, params))
        log.debug("Sent %s notification", method)

    async def _send_exit(self) -> None:
        self._ensure_open()
        self._exit_sent = True
        if self._config.exit_as_notification:
            await self._write(notification(METHOD_EXIT, {}))
            log.debug("Sent exit notification")
            return
        request_id = self._allocate_id()
        await self._write(request(request_id, METHOD_EXIT, {}))
        log.debug("Sent exit (id=%d), not awaiting a reply", request_id)

    async def _notify_best_effort(self, method: str, params: Any) -> None:
        try:
            await self._submit(
                lambda: self._send_notification(method, notification_params(params))
            )
        except BSPClientError as e:
            log.warning("Dropped %s notification: %s", method, e)

    async def _handle_batch(self, batch: list[Any]) -> None:
        for raw in batch:
            try:
                message = classify(raw)
            except MalformedMessageError as e:
                self.malformed_messages += 1
                log.warning("Dropping malformed message from build server: %s: %r", e, raw)
                continue

            if isinstance(message, Response):
                self._dispatch_response(message)
            elif isinstance(message, Notification):
                log.debug("Buffered notification %s", message.method)
                self._notifications.append(message)
            else:
                log.debug("Buffered server request %s (id=%r)", message.method, message.id)
                self._server_requests.append(message)

    def _dispatch_response(self, response: Response) -> None:
        if self._pending.resolve(response.id, response):
            timer = self._deadlines.pop(response.id, None)
            if timer is not None:
                timer.cancel()
            log.debug("Resolved request id=%r", response.id)
            return
        self.unmatched_responses += 1
        log.warning("Dropping response with no pending request (id=%r)", response.id)

    async def _lose_connection(self, reason: ConnectionClosedError) -> None:
        if self._closed:
            log.debug("Transport closed after connection was already down: %s", reason)
            return
        if self._exit_sent:
            log.info("Build server closed the connection after exit")
        else:
            log.error("Connection to build server lost: %s", reason)
        self._close(reason)

    async def _stop_state(self) -> None:
        self._close(EngineStoppedError("client stopped"))

    async def _take_notifications(self) -> list[Notification]:
        taken, self._notifications = self._notifications, []
        return taken

    async def _take_server_requests(self) -> list[ServerRequest]:
        taken, self._server_requests = self._server_requests, []
        return taken

    async def _count_pending(self) -> int:
        return self._pending.count()
