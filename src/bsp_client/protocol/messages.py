"""JSON-RPC message construction and inbound classification.

Inbound messages are not tagged by the build server; their kind is decided
purely by which fields are present:

    id    method   kind
    yes   no       Response
    no    yes      Notification
    yes   yes      ServerRequest
    no    no       malformed
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bsp_client.errors import MalformedMessageError

JSONRPC_VERSION = "2.0"


@dataclass(frozen=True)
class Response:
    """Reply to one of our requests. Exactly one of result/error is meaningful."""

    id: Any
    result: Any = None
    error: dict[str, Any] | None = None
    message: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Notification:
    """Fire-and-forget message from the build server."""

    method: str
    params: Any = None


@dataclass(frozen=True)
class ServerRequest:
    """Request initiated by the build server toward this client."""

    id: Any
    method: str
    params: Any = None


InboundMessage = Response | Notification | ServerRequest


def request(request_id: int, method: str, params: Any) -> dict[str, Any]:
    """Build an outbound request."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}


def notification(method: str, params: Any) -> dict[str, Any]:
    """Build an outbound notification. Notifications never carry an id."""
    return {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params}


def classify(message: Any) -> InboundMessage:
    """Classify a decoded inbound message by field presence.

    Raises:
        MalformedMessageError: if the message is not an object, or has
            neither an id nor a method.
    """
    if not isinstance(message, Mapping):
        raise MalformedMessageError(
            f"message must be an object, got {type(message).__name__}", message
        )

    has_id = "id" in message
    has_method = "method" in message

    if has_method and not isinstance(message["method"], str):
        raise MalformedMessageError("method must be a string", message)

    if has_id and has_method:
        return ServerRequest(
            id=message["id"], method=message["method"], params=message.get("params")
        )
    if has_id:
        return Response(
            id=message["id"],
            result=message.get("result"),
            error=message.get("error"),
            message=message,
        )
    if has_method:
        return Notification(method=message["method"], params=message.get("params"))
    raise MalformedMessageError("message has neither id nor method", message)
