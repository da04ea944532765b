"""
JSON-RPC 2.0 client for the MCP tool server.

Requests are POSTed to the configured base URL:

    {"jsonrpc": "2.0", "id": <int>, "method": "tools/call" | "tools/list" | "initialize", "params": {...}}

Liveness is reported by GET {base_url}/actuator/health (HTTP status only).
"""
import itertools
import json
import logging
from typing import Any, Optional

import httpx

from app.services.errors import ToolProtocolError, ToolTransportError

logger = logging.getLogger(__name__)


class McpClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        health_timeout: float = 5.0,
        oauth_token: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._oauth_token = oauth_token
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(timeout))
        self._request_ids = itertools.count(1)

    def close(self) -> None:
        self._http.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._oauth_token:
            headers["Authorization"] = f"Bearer {self._oauth_token}"
        return headers

    def _request(self, method: str, params: dict, tool_name: Optional[str] = None) -> Any:
        """Send one JSON-RPC request and return its `result` member."""
        request_id = next(self._request_ids)
        body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}

        logger.info("mcp_request_sent", extra={"method": method, "request_id": request_id})
        logger.debug("mcp_request_body", extra={"body": json.dumps(body)})

        try:
            response = self._http.post(
                self.base_url,
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error("mcp_request_timeout", extra={"method": method, "request_id": request_id})
            raise ToolTransportError(f"MCP request timed out after {self.timeout}s: {e}", tool_name) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("mcp_http_error", extra={"method": method, "request_id": request_id, "status": status})
            raise ToolTransportError(f"HTTP {status}: {e.response.reason_phrase}", tool_name) from e
        except httpx.HTTPError as e:
            logger.error("mcp_connection_failed", extra={"method": method, "request_id": request_id, "error": str(e)})
            raise ToolTransportError(f"MCP connection failed: {e}", tool_name) from e
        except ValueError as e:
            logger.error("mcp_invalid_json", extra={"method": method, "request_id": request_id, "error": str(e)})
            raise ToolTransportError(f"MCP server returned invalid JSON: {e}", tool_name) from e

        logger.debug("mcp_response_body", extra={"body": json.dumps(data)[:2000]})

        if not isinstance(data, dict):
            raise ToolTransportError("MCP server returned a non-object response", tool_name)

        if data.get("id") not in (None, request_id):
            logger.warning(
                "mcp_response_id_mismatch",
                extra={"method": method, "request_id": request_id, "response_id": data.get("id")},
            )

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or "Unknown MCP error"
                code = error.get("code")
            else:
                message, code = str(error), None
            logger.error("mcp_protocol_error", extra={"method": method, "code": code, "error": message})
            raise ToolProtocolError(message, tool_name, code=code)

        return data.get("result")

    # ── Tools ──────────────────────────────────────────────────────────────────

    def call_tool(self, tool_name: str, arguments: dict) -> Any:
        """Invoke a tool; returns the raw JSON-RPC result (content + isError)."""
        return self._request("tools/call", {"name": tool_name, "arguments": arguments}, tool_name=tool_name)

    def list_tools(self) -> list[dict]:
        result = self._request("tools/list", {})
        if not isinstance(result, dict):
            return []
        return result.get("tools") or []

    # ── Lifecycle / diagnostics ────────────────────────────────────────────────

    def initialize(self) -> bool:
        try:
            self._request("initialize", {})
            logger.info("mcp_server_initialized", extra={"base_url": self.base_url})
            return True
        except (ToolTransportError, ToolProtocolError) as e:
            logger.error("mcp_initialize_failed", extra={"base_url": self.base_url, "error": str(e)})
            return False

    def health_check(self) -> bool:
        try:
            response = self._http.get(f"{self.base_url}/actuator/health", timeout=self.health_timeout)
            return response.is_success
        except httpx.HTTPError as e:
            logger.error("mcp_health_check_failed", extra={"base_url": self.base_url, "error": str(e)})
            return False

    def get_server_info(self) -> Optional[dict]:
        try:
            response = self._http.get(self.base_url, timeout=self.health_timeout)
            if response.is_success:
                return response.json()
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error("mcp_server_info_failed", extra={"base_url": self.base_url, "error": str(e)})
            return None
