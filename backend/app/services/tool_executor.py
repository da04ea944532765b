import logging

from app.models.tools import ToolInvocation, ToolResult
from app.services.errors import ToolProtocolError, ToolResponseMalformed
from app.services.mcp_client import McpClient

logger = logging.getLogger(__name__)


def _first_text(content: list) -> str | None:
    for item in content:
        if isinstance(item, dict) and item.get("text") is not None:
            return item["text"]
    return None


class ToolExecutor:
    """Runs one ToolInvocation against the MCP server and returns its text."""

    def __init__(self, client: McpClient):
        self._client = client

    def execute(self, invocation: ToolInvocation) -> ToolResult:
        tool_name = invocation.tool_name
        logger.info("tool_execution_started", extra={"tool": tool_name, "arguments": invocation.arguments})

        result = self._client.call_tool(tool_name, invocation.arguments)

        # Older MCP servers report failures as {"code": "error", "message": ...}
        if isinstance(result, dict) and result.get("code") == "error":
            message = result.get("message") or "Unknown error"
            logger.error("tool_returned_error", extra={"tool": tool_name, "error": message, "format": "legacy"})
            raise ToolProtocolError(message, tool_name)

        if not isinstance(result, dict) or not result.get("content"):
            logger.error("tool_response_malformed", extra={"tool": tool_name, "result": str(result)[:500]})
            raise ToolResponseMalformed("Invalid MCP response structure", tool_name)

        text = _first_text(result["content"])
        if text is None:
            logger.error("tool_response_without_text", extra={"tool": tool_name})
            raise ToolResponseMalformed("MCP response contains no text content", tool_name)

        if result.get("isError"):
            logger.error("tool_returned_error", extra={"tool": tool_name, "error": text[:500]})
            raise ToolProtocolError(text, tool_name)

        logger.info("tool_execution_succeeded", extra={"tool": tool_name, "result_length": len(text)})
        return ToolResult(tool_name=tool_name, text=text)
