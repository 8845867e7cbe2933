"""
Tests for RemoteWriter: payload encoding and success/failure mapping.
"""

import httpx
import pytest

from sheetdash.errors import WriteError
from sheetdash.writer import (
    RemoteWriter,
    WriteFailure,
    WriteSuccess,
    encode_payload,
    meeting_payload,
    todo_payload,
)


def _writer(config, handler):
    return RemoteWriter(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestPayloads:
    def test_encode_flattens_scalars(self):
        params = encode_payload("addTodo", {"task": "整理", "dueDate": None, "count": 3})
        assert params == {"action": "addTodo", "task": "整理", "dueDate": "", "count": "3"}

    def test_encode_rejects_nested_values(self):
        with pytest.raises(WriteError):
            encode_payload("addTodo", {"task": ["a", "b"]})

    def test_meeting_defaults(self):
        payload = meeting_payload(title="審查會", assign_date="2025-01-15", status="")
        assert payload["status"] == "待處理"
        assert payload["assignDate"] == "2025-01-15"
        assert payload["note"] == ""

    def test_todo_defaults(self):
        payload = todo_payload(task="彙整")
        assert payload["priority"] == "中"
        assert payload["status"] == "待處理"


class TestWrite:
    @pytest.mark.asyncio
    async def test_success_carries_created_id(self, config):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json={"success": True, "meetingId": "M010"})

        result = await _writer(config, handler).write("addMeeting", meeting_payload(title="審查會"))

        assert result == WriteSuccess(action="addMeeting", created_id="M010")
        assert result.ok
        assert seen["action"] == "addMeeting"
        assert seen["title"] == "審查會"

    @pytest.mark.asyncio
    async def test_success_without_id(self, config):
        result = await _writer(config, lambda r: httpx.Response(200, json={"success": True})).write(
            "updateStatus", {"id": "M1", "status": "已完成", "sheet": "01_會議工作清單"}
        )
        assert isinstance(result, WriteSuccess)
        assert result.created_id is None

    @pytest.mark.asyncio
    async def test_remote_failure_becomes_failure(self, config):
        handler = lambda r: httpx.Response(200, json={"success": False, "error": "欄位不足"})
        result = await _writer(config, handler).write("addTodo", todo_payload(task="x"))
        assert result == WriteFailure(action="addTodo", reason="欄位不足")
        assert not result.ok

    @pytest.mark.asyncio
    async def test_network_error_is_not_raised(self, config):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        result = await _writer(config, handler).write("addTodo", todo_payload(task="x"))
        assert isinstance(result, WriteFailure)
        assert "network error" in result.reason

    @pytest.mark.asyncio
    async def test_undecodable_body_is_failure(self, config):
        handler = lambda r: httpx.Response(200, text="<html>Moved</html>")
        result = await _writer(config, handler).write("addTodo", todo_payload(task="x"))
        assert isinstance(result, WriteFailure)
        assert "undecodable" in result.reason

    @pytest.mark.asyncio
    async def test_http_status_is_failure(self, config):
        result = await _writer(config, lambda r: httpx.Response(403)).write("addTodo", todo_payload(task="x"))
        assert result == WriteFailure(action="addTodo", reason="HTTP 403")

    @pytest.mark.asyncio
    async def test_unknown_action_never_hits_the_network(self, config):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"success": True})

        result = await _writer(config, handler).write("deleteEverything", {})
        assert isinstance(result, WriteFailure)
        assert calls == []
