"""Wire framing shared by BSP and LSP.

A frame is a block of ``Name: value`` header lines, a blank line, then a
JSON body whose size in UTF-8 bytes is given by Content-Length:

    Content-Length: 56\r\n
    \r\n
    {"jsonrpc":"2.0","id":1,"method":"shutdown","params":{}}

Header names are compared case-insensitively. Content-Type and any other
header is accepted and ignored.

Two failure classes matter to the reader loop. A FramingError leaves the
stream at an unknown offset, so the connection is finished. A
MessageDecodeError means a whole frame was consumed but its body was
useless; the next frame can still be read.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from bsp_client.errors import BSPClientError

DEFAULT_MAX_MESSAGE_SIZE = 10 * 1024 * 1024

_LINE_END = b"\r\n"


class FramingError(BSPClientError):
    """The stream no longer lines up with frame boundaries."""


class MessageDecodeError(FramingError):
    """A complete frame whose body is not a UTF-8 JSON object."""


def parse_header(block: bytes) -> dict[str, str]:
    """Split a header block into lowercased names and stripped values.

    Raises:
        FramingError: On a line without a colon, a non-ASCII byte, or a
            missing or non-numeric Content-Length.

    Example:
        >>> parse_header(b"Content-Length: 2\\r\\nContent-Type: application/json")
        {'content-length': '2', 'content-type': 'application/json'}
    """
    try:
        text = block.decode("ascii")
    except UnicodeDecodeError as e:
        raise FramingError(f"non-ASCII byte in frame header: {e}") from e

    headers: dict[str, str] = {}
    for line in filter(None, text.split("\r\n")):
        name, colon, value = line.partition(":")
        if not colon or not name.strip():
            raise FramingError(f"bad frame header line {line!r}")
        headers[name.strip().lower()] = value.strip()

    content_length(headers)
    return headers


def content_length(headers: dict[str, str]) -> int:
    raw = headers.get("content-length")
    if raw is None:
        raise FramingError("frame header has no Content-Length")
    if not raw.isdigit():
        raise FramingError(f"Content-Length is not a byte count: {raw!r}")
    return int(raw)


def decode_body(body: bytes) -> dict[str, Any]:
    try:
        message = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise MessageDecodeError(f"frame body is not UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise MessageDecodeError(f"frame body is not JSON: {e}") from e

    if not isinstance(message, dict):
        raise MessageDecodeError(f"frame body is a JSON {type(message).__name__}, not an object")
    return message


async def _read_header_block(reader: asyncio.StreamReader) -> bytes | None:
    lines: list[bytes] = []
    while True:
        try:
            line = await reader.readuntil(_LINE_END)
        except asyncio.IncompleteReadError as e:
            if not lines and not e.partial:
                return None
            raise FramingError("stream ended inside a frame header") from e
        except asyncio.LimitOverrunError as e:
            raise FramingError(f"frame header line too long: {e}") from e

        if line == _LINE_END:
            return b"".join(lines)
        lines.append(line)


async def read_message(
    reader: asyncio.StreamReader,
    *,
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> dict[str, Any] | None:
    """Read the next frame and decode its body.

    Returns None when the stream ends cleanly between frames.

    Raises:
        FramingError: Bad header, oversized frame, or EOF partway through.
        MessageDecodeError: The frame was read but its body is unusable.
    """
    block = await _read_header_block(reader)
    if block is None:
        return None

    length = content_length(parse_header(block))
    if length > max_message_size:
        raise FramingError(f"frame of {length} bytes is over the {max_message_size} byte limit")

    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"stream ended {length - len(e.partial)} bytes short of a {length} byte frame"
        ) from e
    return decode_body(body)


def encode_message(msg: dict[str, Any]) -> bytes:
    try:
        body = json.dumps(msg, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise FramingError(f"message is not JSON-serializable: {e}") from e
    return b"Content-Length: %d\r\n\r\n" % len(body) + body


async def write_message(
    writer: asyncio.StreamWriter,
    msg: dict[str, Any],
    *,
    drain: bool = True,
) -> None:
    """Frame msg onto writer.

    Raises:
        FramingError: If msg cannot be encoded; nothing is written.
        ConnectionError: If the peer has gone away.
    """
    writer.write(encode_message(msg))
    if drain:
        await writer.drain()
