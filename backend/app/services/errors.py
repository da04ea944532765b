from typing import Optional


class ChatBackendError(Exception):
    """Base class for every error raised by the chat/tool-call pipeline."""
    pass


class InvalidHistoryError(ChatBackendError):
    """Raised when the history sent to the LLM does not end with a user turn."""
    pass


class LLMUnavailableError(ChatBackendError):
    """Raised when Gemini could not answer, after the retry policy gave up."""

    def __init__(self, cause_message: str, attempts: int):
        super().__init__(f"Failed to get response from Gemini: {cause_message}")
        self.cause_message = cause_message
        self.attempts = attempts


# ── Tool execution ─────────────────────────────────────────────────────────────

class ToolExecutionError(ChatBackendError):
    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class ToolTransportError(ToolExecutionError):
    """The HTTP exchange with the MCP server failed (status, timeout, connection)."""
    pass


class ToolProtocolError(ToolExecutionError):
    """The MCP server answered with a JSON-RPC error."""

    def __init__(self, message: str, tool_name: Optional[str] = None, code=None):
        super().__init__(message, tool_name)
        self.code = code


class ToolResponseMalformed(ToolExecutionError):
    """A successful tools/call result carried no content."""
    pass


class ToolCatalogUnavailableError(ChatBackendError):
    """tools/list could not be fetched."""
    pass


# ── Self-correction ────────────────────────────────────────────────────────────

class SelfCorrectionError(ChatBackendError):
    def __init__(self, message: str, tool_name: Optional[str] = None, attempt: int = 0):
        super().__init__(message)
        self.tool_name = tool_name
        self.attempt = attempt


class CorrectionDeclinedError(SelfCorrectionError):
    """The LLM answered ERROR_UNABLE_TO_FIX."""
    pass


class CorrectionMissingError(SelfCorrectionError):
    """The LLM's correction did not contain any TOOL_CALL marker."""
    pass


class MaxRetriesExceededError(SelfCorrectionError):
    pass
