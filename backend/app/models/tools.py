from typing import Any, Optional

from pydantic import BaseModel


class ToolInvocation(BaseModel):
    tool_name: str
    arguments: dict[str, Any]


class ToolResult(BaseModel):
    tool_name: str
    text: str


class McpStatus(BaseModel):
    healthy: bool
    initialized: bool
    tools_count: int
    server_info: Optional[dict[str, Any]] = None
