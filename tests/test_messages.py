"""Tests for message builders and inbound classification."""

from __future__ import annotations

import pytest

from bsp_client.errors import MalformedMessageError
from bsp_client.protocol.messages import (
    Notification,
    Response,
    ServerRequest,
    classify,
    notification,
    request,
)


class TestBuilders:
    """Tests for outbound message construction."""

    def test_request_carries_id(self) -> None:
        msg = request(4, "shutdown", {})
        assert msg == {"jsonrpc": "2.0", "id": 4, "method": "shutdown", "params": {}}

    def test_notification_has_no_id(self) -> None:
        msg = notification("build/initialized", {"textDocument": {"uri": "file:///x"}})
        assert "id" not in msg
        assert msg["method"] == "build/initialized"


class TestClassify:
    """Classification is decided by which of id/method are present."""

    def test_id_without_method_is_response(self) -> None:
        msg = {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}
        result = classify(msg)

        assert isinstance(result, Response)
        assert result.id == 1
        assert result.result == {"ok": True}
        assert result.error is None
        assert result.message is msg

    def test_error_response(self) -> None:
        result = classify({"id": 2, "error": {"code": -32601, "message": "nope"}})

        assert isinstance(result, Response)
        assert result.is_error
        assert result.error["code"] == -32601

    def test_method_without_id_is_notification(self) -> None:
        result = classify({"method": "build/logMessage", "params": {"message": "hi"}})

        assert result == Notification(method="build/logMessage", params={"message": "hi"})

    def test_id_and_method_is_server_request(self) -> None:
        result = classify({"id": "abc", "method": "workspace/reload"})

        assert result == ServerRequest(id="abc", method="workspace/reload", params=None)

    def test_null_id_still_counts_as_present(self) -> None:
        result = classify({"jsonrpc": "2.0", "id": None, "error": {"code": -32700}})

        assert isinstance(result, Response)
        assert result.id is None

    def test_neither_id_nor_method_rejected(self) -> None:
        with pytest.raises(MalformedMessageError, match="neither id nor method") as excinfo:
            classify({"jsonrpc": "2.0", "result": 1})
        assert excinfo.value.message == {"jsonrpc": "2.0", "result": 1}

    @pytest.mark.parametrize("value", [None, "text", 3, [1, 2]])
    def test_non_object_rejected(self, value) -> None:
        with pytest.raises(MalformedMessageError, match="must be an object"):
            classify(value)

    def test_non_string_method_rejected(self) -> None:
        with pytest.raises(MalformedMessageError, match="method must be a string"):
            classify({"method": ["build/initialize"]})
