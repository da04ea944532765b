import logging
from typing import Optional

from pydantic import BaseModel

from app.models.chat import Message, MessageRole
from app.services.errors import (
    ChatBackendError,
    InvalidHistoryError,
    LLMUnavailableError,
    SelfCorrectionError,
    ToolCatalogUnavailableError,
    ToolExecutionError,
)
from app.services.gemini_service import GeminiService, prompt_message
from app.services.mcp_context_service import TOOLS_UNAVAILABLE_CONTEXT, McpContextService
from app.services.self_correction import ToolCallRecovery
from app.services.tool_call_parser import extract_tool_calls

logger = logging.getLogger(__name__)

LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
TOOL_UNAVAILABLE = "TOOL_UNAVAILABLE"
TOOL_CORRECTION_FAILED = "TOOL_CORRECTION_FAILED"
INVALID_HISTORY = "INVALID_HISTORY"
INTERNAL_ERROR = "INTERNAL_ERROR"

_UNAVAILABLE_MESSAGE = "The AI service is temporarily unavailable. Please try again in a few moments."
_TOOL_FAILURE_MESSAGE = "The AI could not complete the requested tool operation. Please try again in a few moments."


class TurnOutcome(BaseModel):
    """Result of one user turn: either `content` or an error classification."""
    content: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    retry_after: Optional[int] = None
    tool_calls: int = 0

    @property
    def ok(self) -> bool:
        return self.error_type is None


def build_tool_prompt(tools_context: str, user_text: str, tool_call_format: str) -> str:
    return (
        f"{tools_context}\n\n"
        "When a user asks a question:\n"
        "1. If it can be answered using MCP tools, call the appropriate tool\n"
        "2. If it's a general question, answer directly\n"
        "3. Always be helpful and provide clear explanations\n\n"
        f'User message: "{user_text}"\n\n'
        "Respond with either:\n"
        "- A direct answer if no MCP tools are needed\n"
        f"- A tool call in the format: {tool_call_format}\n"
        "- If you need to call multiple tools, use multiple TOOL_CALL lines"
    )


def build_direct_prompt(user_text: str) -> str:
    return (
        f"{TOOLS_UNAVAILABLE_CONTEXT}\n\n"
        "Answer the user's message directly and clearly, without calling any tools.\n\n"
        f'User message: "{user_text}"'
    )


def _prior_history(user_text: str, history: list[Message]) -> list[Message]:
    """History without the trailing copy of the current user message."""
    if history and history[-1].role == MessageRole.USER and history[-1].content == user_text:
        return history[:-1]
    return history


class ConversationOrchestrator:
    """Decides per user turn between a direct answer and tool-augmented answers."""

    def __init__(
        self,
        llm: GeminiService,
        context_service: Optional[McpContextService] = None,
        recovery: Optional[ToolCallRecovery] = None,
        tool_call_format: str = "",
        retry_after_seconds: int = 60,
    ):
        self._llm = llm
        self._context_service = context_service
        self._recovery = recovery
        self._tool_call_format = tool_call_format
        self._retry_after = retry_after_seconds
        self.tools_enabled = context_service is not None and recovery is not None

    def disable_tools(self, reason: str) -> None:
        if self.tools_enabled:
            logger.warning("tool_augmentation_disabled", extra={"reason": reason})
        self.tools_enabled = False

    def handle_user_turn(self, user_text: str, chat_history: list[Message]) -> TurnOutcome:
        """Produce the assistant reply for `user_text`.

        `chat_history` is the persisted conversation, normally ending with the
        user message of this turn. Never raises: failures come back as a
        TurnOutcome carrying an error_type.
        """
        try:
            if not self.tools_enabled:
                return TurnOutcome(content=self._llm.send(chat_history))
            return self._handle_with_tools(user_text, chat_history)

        except LLMUnavailableError as e:
            logger.error("turn_failed_llm_unavailable", extra={"error": e.cause_message, "attempts": e.attempts})
            return self._failure(LLM_UNAVAILABLE, _UNAVAILABLE_MESSAGE)
        except SelfCorrectionError as e:
            logger.error(
                "turn_failed_tool_correction",
                extra={"error": str(e), "type": type(e).__name__, "tool": e.tool_name, "attempt": e.attempt},
            )
            return self._failure(TOOL_CORRECTION_FAILED, _TOOL_FAILURE_MESSAGE)
        except ToolExecutionError as e:
            logger.error("turn_failed_tool_unavailable", extra={"error": str(e), "tool": e.tool_name})
            return self._failure(TOOL_UNAVAILABLE, _TOOL_FAILURE_MESSAGE)
        except InvalidHistoryError as e:
            logger.error("turn_failed_invalid_history", extra={"error": str(e)})
            return TurnOutcome(error_type=INVALID_HISTORY, error_message=str(e))
        except ChatBackendError as e:
            logger.error("turn_failed", extra={"error": str(e), "type": type(e).__name__})
            return self._failure(INTERNAL_ERROR, _UNAVAILABLE_MESSAGE)
        except Exception as e:
            logger.error("turn_failed_unexpected", extra={"error": str(e), "type": type(e).__name__}, exc_info=True)
            return self._failure(INTERNAL_ERROR, _UNAVAILABLE_MESSAGE)

    def _handle_with_tools(self, user_text: str, chat_history: list[Message]) -> TurnOutcome:
        prior = _prior_history(user_text, chat_history)
        chat_id = chat_history[-1].chat_id if chat_history else ""

        try:
            tools_context = self._context_service.get_tools_context()
        except ToolCatalogUnavailableError as e:
            # Degrade to a plain answer rather than failing the turn.
            logger.warning("tool_catalog_unavailable_direct_answer", extra={"error": str(e)})
            prompt = build_direct_prompt(user_text)
            return TurnOutcome(content=self._llm.send([*prior, prompt_message(chat_id, prompt)]))

        prompt = build_tool_prompt(tools_context, user_text, self._tool_call_format)
        response = self._llm.send([*prior, prompt_message(chat_id, prompt)])

        invocations = extract_tool_calls(response)
        if not invocations:
            logger.info("turn_direct_answer", extra={"response_length": len(response)})
            return TurnOutcome(content=response)

        logger.info("turn_tool_calls", extra={"tools": [i.tool_name for i in invocations]})
        answer = self._recovery.execute_with_recovery(
            invocations,
            user_text,
            prior,
            tools_context=tools_context,
        )
        return TurnOutcome(content=answer, tool_calls=len(invocations))

    def _failure(self, error_type: str, message: str) -> TurnOutcome:
        return TurnOutcome(error_type=error_type, error_message=message, retry_after=self._retry_after)
