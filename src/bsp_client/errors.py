"""Error types raised by the BSP client."""

from __future__ import annotations

from typing import Any


class BSPClientError(Exception):
    """Base class for all BSP client errors."""


class DescriptorError(BSPClientError):
    """A `.bsp/*.json` connection descriptor could not be read or parsed."""


class MalformedMessageError(BSPClientError):
    """An inbound message is neither a response, notification nor request."""

    def __init__(self, reason: str, message: Any = None) -> None:
        super().__init__(reason)
        self.message = message


class DuplicateRequestError(BSPClientError):
    """A request id was reserved twice in the pending table."""


class ConnectionClosedError(BSPClientError):
    """The connection to the build server is gone.

    Every call that was waiting for a response when the transport failed
    is resolved with this error, and later operations raise it.
    """


class EngineStoppedError(ConnectionClosedError):
    """The client was stopped, or never started."""


class RequestTimeoutError(BSPClientError):
    """No response arrived before the request deadline."""

    def __init__(self, request_id: int, method: str, timeout: float) -> None:
        super().__init__(f"{method} (id={request_id}) timed out after {timeout:g}s")
        self.request_id = request_id
        self.method = method
        self.timeout = timeout
