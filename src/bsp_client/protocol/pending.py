"""Table of requests awaiting a response."""

from __future__ import annotations

import asyncio

from bsp_client.errors import DuplicateRequestError
from bsp_client.protocol.messages import Response


class PendingRequestTable:
    """Maps request ids to the future of the caller waiting on them.

    Each entry is resolved at most once: resolving or failing removes it.
    Only the engine worker touches the table, so there is no locking here.
    """

    def __init__(self) -> None:
        self._entries: dict[int, asyncio.Future[Response]] = {}

    def reserve(self, request_id: int, handle: asyncio.Future[Response]) -> None:
        if request_id in self._entries:
            raise DuplicateRequestError(f"request id {request_id} is already pending")
        self._entries[request_id] = handle

    def resolve(self, request_id: object, response: Response) -> bool:
        """Complete the waiting caller. Returns False if nobody was waiting."""
        handle = self._pop(request_id)
        if handle is None or handle.cancelled():
            return False
        if not handle.done():
            handle.set_result(response)
        return True

    def fail(self, request_id: object, exc: BaseException) -> bool:
        handle = self._pop(request_id)
        if handle is None:
            return False
        if not handle.done():
            handle.set_exception(exc)
        return True

    def fail_all(self, exc: BaseException) -> int:
        """Fail every waiting caller with exc and empty the table."""
        entries = list(self._entries.values())
        self._entries.clear()
        for handle in entries:
            if not handle.done():
                handle.set_exception(exc)
        return len(entries)

    def discard(self, request_id: int) -> bool:
        return self._entries.pop(request_id, None) is not None

    def count(self) -> int:
        return len(self._entries)

    def _pop(self, request_id: object) -> asyncio.Future[Response] | None:
        # Responses may carry ids of any JSON type
        if not isinstance(request_id, int) or isinstance(request_id, bool):
            return None
        return self._entries.pop(request_id, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries
