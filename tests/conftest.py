"""Shared fixtures: settings, message factories and an in-process MCP server."""

from __future__ import annotations

import json

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from app.config import Settings
from app.models.chat import Message, MessageRole
from app.services.gemini_service import GeminiService
from app.services.mcp_client import McpClient

MCP_URL = "http://mcp.test"

SEGMENT_TOOL = {
    "name": "getSegment",
    "description": "Return contacts matching a segment filter",
    "inputSchema": {"type": "object", "properties": {"filter": {"type": "string"}}},
}


@pytest.fixture
def settings() -> Settings:
    return Settings(mcp_enabled=True, mcp_base_url=MCP_URL, llm_retry_attempts=3, llm_retry_base_delay=0.0)


def make_message(content: str, role: MessageRole = MessageRole.USER, chat_id: str = "chat-1", idx: int = 0) -> Message:
    return Message(id=f"msg-{idx}", chat_id=chat_id, role=role, content=content)


@pytest.fixture
def user_history() -> Callable[[str], list[Message]]:
    def _history(text: str) -> list[Message]:
        return [
            make_message("Hi", MessageRole.USER, idx=1),
            make_message("Hello! How can I help?", MessageRole.ASSISTANT, idx=2),
            make_message(text, MessageRole.USER, idx=3),
        ]

    return _history


@pytest.fixture
def fake_llm() -> MagicMock:
    """GeminiService double; set .send.side_effect / .return_value per test."""
    return MagicMock(spec=GeminiService)


class FakeMcpServer:
    """Records JSON-RPC requests and answers tools/call via a per-test handler."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.tools: list[dict[str, Any]] = [SEGMENT_TOOL]
        self.list_error: Exception | None = None
        self.call_handler: Callable[[str, dict], dict] = lambda name, args: {
            "result": {"content": [{"type": "text", "text": f"{name} ok"}], "isError": False}
        }

    @property
    def tool_calls(self) -> list[dict[str, Any]]:
        return [r["params"] for r in self.requests if r["method"] == "tools/call"]

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            if request.url.path == "/actuator/health":
                return httpx.Response(200, json={"status": "UP"})
            return httpx.Response(200, json={"name": "fake-mcp"})

        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        if method == "tools/list":
            if self.list_error is not None:
                raise self.list_error
            payload: dict[str, Any] = {"result": {"tools": self.tools}}
        elif method == "tools/call":
            payload = self.call_handler(body["params"]["name"], body["params"]["arguments"])
        else:
            payload = {"result": {}}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **payload})


@pytest.fixture
def mcp_server() -> FakeMcpServer:
    return FakeMcpServer()


@pytest.fixture
def mcp_client(mcp_server: FakeMcpServer) -> McpClient:
    http = httpx.Client(transport=httpx.MockTransport(mcp_server.handle))
    return McpClient(MCP_URL, timeout=1.0, http_client=http)
