"""Transport layer: Content-Length framing and the stdio subprocess channel."""

from bsp_client.transport.base import Transport
from bsp_client.transport.framing import FramingError, MessageDecodeError
from bsp_client.transport.stdio import StdioTransport

__all__ = [
    "FramingError",
    "MessageDecodeError",
    "StdioTransport",
    "Transport",
]
