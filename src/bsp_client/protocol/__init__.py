"""BSP message model: classification, pending requests and payload types."""

from bsp_client.protocol.messages import (
    Notification,
    Response,
    ServerRequest,
    classify,
    notification,
    request,
)
from bsp_client.protocol.pending import PendingRequestTable

__all__ = [
    "Notification",
    "PendingRequestTable",
    "Response",
    "ServerRequest",
    "classify",
    "notification",
    "request",
]
