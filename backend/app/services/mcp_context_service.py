import json
import logging

from app.config import Settings
from app.models.tools import McpStatus
from app.services.errors import ToolCatalogUnavailableError, ToolExecutionError
from app.services.mcp_client import McpClient

logger = logging.getLogger(__name__)

TOOLS_UNAVAILABLE_CONTEXT = "MCP tools are currently unavailable."


def describe_tool(tool: dict) -> str:
    return (
        f"Tool: {tool.get('name')}\n"
        f"Description: {tool.get('description', '')}\n"
        f"Parameters: {json.dumps(tool.get('inputSchema', {}), indent=2)}"
    )


class McpContextService:
    """Builds the tool catalog section of the prompt from tools/list."""

    def __init__(self, client: McpClient, settings: Settings):
        self._client = client
        self._system_prompt = settings.tool_system_prompt
        self._tool_call_format = settings.tool_call_format

    @property
    def client(self) -> McpClient:
        return self._client

    def get_tools_context(self) -> str:
        """Instructions + catalog + call format. Raises ToolCatalogUnavailableError."""
        try:
            tools = self._client.list_tools()
        except ToolExecutionError as e:
            logger.error("tool_catalog_fetch_failed", extra={"error": str(e)})
            raise ToolCatalogUnavailableError(str(e)) from e

        logger.info("tool_catalog_loaded", extra={"tools_count": len(tools)})
        tools_description = "\n\n".join(describe_tool(t) for t in tools)
        return (
            f"{self._system_prompt}\n\n"
            f"Available MCP tools:\n{tools_description}\n\n"
            f"Tool call format: {self._tool_call_format}"
        )

    def get_available_tools(self) -> list[dict]:
        try:
            return self._client.list_tools()
        except ToolExecutionError as e:
            logger.error("tool_listing_failed", extra={"error": str(e)})
            return []

    def get_status(self) -> McpStatus:
        healthy = self._client.health_check()
        tools = self.get_available_tools()
        server_info = self._client.get_server_info()
        return McpStatus(
            healthy=healthy,
            initialized=healthy,
            tools_count=len(tools),
            server_info=server_info if isinstance(server_info, dict) else None,
        )
