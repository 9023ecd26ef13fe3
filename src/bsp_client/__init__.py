"""bsp-client - Build Server Protocol client over a subprocess's stdio."""

from bsp_client.discovery import discover
from bsp_client.engine import BuildClient
from bsp_client.errors import (
    BSPClientError,
    ConnectionClosedError,
    DescriptorError,
    EngineStoppedError,
    MalformedMessageError,
    RequestTimeoutError,
)
from bsp_client.protocol.messages import Notification, Response, ServerRequest
from bsp_client.protocol.types import ConnectionDescriptor

__all__ = [
    "BSPClientError",
    "BuildClient",
    "ConnectionClosedError",
    "ConnectionDescriptor",
    "DescriptorError",
    "EngineStoppedError",
    "MalformedMessageError",
    "Notification",
    "RequestTimeoutError",
    "Response",
    "ServerRequest",
    "discover",
]

__version__ = "0.1.0"
