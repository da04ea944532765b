"""Tests for mapping MCP tools/call results to text or typed failures."""

from __future__ import annotations

import pytest

from app.models.tools import ToolInvocation, ToolResult
from app.services.errors import ToolProtocolError, ToolResponseMalformed
from app.services.mcp_client import McpClient
from app.services.tool_executor import ToolExecutor
from conftest import FakeMcpServer

INVOCATION = ToolInvocation(tool_name="getSegment", arguments={"filter": "gender=male"})


@pytest.fixture
def executor(mcp_client: McpClient) -> ToolExecutor:
    return ToolExecutor(mcp_client)


def test_returns_first_text_content(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {
        "result": {"content": [{"type": "text", "text": "42 contacts"}, {"type": "text", "text": "ignored"}],
                   "isError": False}
    }

    assert executor.execute(INVOCATION) == ToolResult(tool_name="getSegment", text="42 contacts")
    assert mcp_server.tool_calls == [{"name": "getSegment", "arguments": {"filter": "gender=male"}}]


def test_missing_content_is_malformed(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {"result": {"isError": False}}

    with pytest.raises(ToolResponseMalformed):
        executor.execute(INVOCATION)


def test_empty_content_is_malformed(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {"result": {"content": [], "isError": False}}

    with pytest.raises(ToolResponseMalformed):
        executor.execute(INVOCATION)


def test_legacy_error_format(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {"result": {"code": "error", "message": "tenant not found"}}

    with pytest.raises(ToolProtocolError, match="tenant not found"):
        executor.execute(INVOCATION)


def test_is_error_result_is_a_protocol_error(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {
        "result": {"content": [{"type": "text", "text": "unknown operator IN"}], "isError": True}
    }

    with pytest.raises(ToolProtocolError, match="unknown operator IN") as exc_info:
        executor.execute(INVOCATION)

    assert exc_info.value.tool_name == "getSegment"


def test_jsonrpc_error(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {"error": {"code": -32000, "message": "boom"}}

    with pytest.raises(ToolProtocolError, match="boom"):
        executor.execute(INVOCATION)


def test_content_without_text_is_malformed(executor: ToolExecutor, mcp_server: FakeMcpServer) -> None:
    mcp_server.call_handler = lambda name, args: {
        "result": {"content": [{"type": "image", "data": "..."}], "isError": False}
    }

    with pytest.raises(ToolResponseMalformed, match="no text"):
        executor.execute(INVOCATION)
