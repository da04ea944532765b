"""
Tool execution with LLM-driven recovery.

When a tool call fails, the error and the tool documentation are sent back to
the LLM, which is asked for corrected arguments in the TOOL_CALL format. The
corrected calls are executed again, up to `max_attempts` correction cycles:

    Executing --all ok--------------------------> Succeeded
    Executing --failure, attempts left----------> Correcting
    Executing --failure, attempts exhausted-----> Failed (MaxRetriesExceededError)
    Correcting --valid correction---------------> Executing
    Correcting --ERROR_UNABLE_TO_FIX------------> Failed (CorrectionDeclinedError)
    Correcting --no TOOL_CALL in reply----------> Failed (CorrectionMissingError)
"""
import json
import logging
from typing import Optional

from app.models.chat import Message
from app.models.tools import ToolInvocation, ToolResult
from app.services.errors import (
    CorrectionDeclinedError,
    CorrectionMissingError,
    MaxRetriesExceededError,
    ToolCatalogUnavailableError,
    ToolExecutionError,
)
from app.services.gemini_service import GeminiService, prompt_message
from app.services.mcp_context_service import TOOLS_UNAVAILABLE_CONTEXT, McpContextService
from app.services.tool_call_parser import TOOL_CALL_MARKER, extract_tool_calls
from app.services.tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

UNABLE_TO_FIX_SENTINEL = "ERROR_UNABLE_TO_FIX"

DEFAULT_MAX_CORRECTION_ATTEMPTS = 2


def build_results_prompt(original_message: str, results: list[ToolResult]) -> str:
    context = "\n\n".join(f"Tool {r.tool_name}: {r.text}" for r in results)
    return (
        f'User asked: "{original_message}"\n\n'
        f"I called the following tools and got these results:\n{context}\n\n"
        "Please provide a helpful response based on these results."
    )


def build_correction_prompt(
    tools_context: str,
    original_message: str,
    failed: ToolInvocation,
    error_message: str,
) -> str:
    return (
        f"{tools_context}\n\n"
        f'The user asked: "{original_message}"\n\n'
        "You requested the following tool call, which failed:\n"
        f"Tool: {failed.tool_name}\n"
        f"Arguments: {json.dumps(failed.arguments)}\n"
        f"Error: {error_message}\n\n"
        "Using the tool documentation above, fix the arguments so that the call succeeds.\n"
        "Respond ONLY with the corrected call, in the format:\n"
        f"{TOOL_CALL_MARKER}:{failed.tool_name}:{{...corrected JSON arguments...}}\n"
        f"If the error cannot be fixed by changing the arguments, respond with exactly {UNABLE_TO_FIX_SENTINEL}."
    )


class ToolCallRecovery:
    def __init__(
        self,
        executor: ToolExecutor,
        llm: GeminiService,
        context_service: Optional[McpContextService] = None,
        max_attempts: int = DEFAULT_MAX_CORRECTION_ATTEMPTS,
    ):
        self._executor = executor
        self._llm = llm
        self._context_service = context_service
        self.max_attempts = max_attempts

    def _tools_context(self, tools_context: Optional[str]) -> str:
        if tools_context is not None:
            return tools_context
        if self._context_service is None:
            return TOOLS_UNAVAILABLE_CONTEXT
        try:
            return self._context_service.get_tools_context()
        except ToolCatalogUnavailableError:
            return TOOLS_UNAVAILABLE_CONTEXT

    def execute_with_recovery(
        self,
        invocations: list[ToolInvocation],
        original_message: str,
        history: list[Message],
        attempt: int = 0,
        max_attempts: Optional[int] = None,
        tools_context: Optional[str] = None,
        completed: Optional[list[ToolResult]] = None,
    ) -> str:
        """Execute `invocations` in order and return the LLM's final answer.

        `completed` holds results of calls that already succeeded earlier in the
        turn, so a correction only re-runs the call that failed and the ones
        after it.
        """
        limit = self.max_attempts if max_attempts is None else max_attempts
        results = list(completed or [])
        chat_id = history[-1].chat_id if history else ""

        for index, invocation in enumerate(invocations):
            try:
                results.append(self._executor.execute(invocation))
            except ToolExecutionError as e:
                remaining = invocations[index + 1:]
                return self._recover(
                    failed=invocation,
                    error=e,
                    remaining=remaining,
                    original_message=original_message,
                    history=history,
                    attempt=attempt,
                    limit=limit,
                    tools_context=tools_context,
                    completed=results,
                )

        logger.info("tool_calls_succeeded", extra={"count": len(results), "attempt": attempt})
        prompt = build_results_prompt(original_message, results)
        return self._llm.send([*history, prompt_message(chat_id, prompt)])

    def _recover(
        self,
        failed: ToolInvocation,
        error: ToolExecutionError,
        remaining: list[ToolInvocation],
        original_message: str,
        history: list[Message],
        attempt: int,
        limit: int,
        tools_context: Optional[str],
        completed: list[ToolResult],
    ) -> str:
        logger.warning(
            "tool_call_failed",
            extra={
                "tool": failed.tool_name,
                "error": str(error),
                "error_type": type(error).__name__,
                "attempt": attempt,
                "max_attempts": limit,
            },
        )

        if attempt >= limit:
            raise MaxRetriesExceededError(
                f"Tool {failed.tool_name} still failing after {attempt} correction attempt(s): {error}",
                tool_name=failed.tool_name,
                attempt=attempt,
            ) from error

        tools_context = self._tools_context(tools_context)
        chat_id = history[-1].chat_id if history else ""
        prompt = build_correction_prompt(tools_context, original_message, failed, str(error))

        logger.info("tool_correction_requested", extra={"tool": failed.tool_name, "attempt": attempt + 1})
        correction = self._llm.send([*history, prompt_message(chat_id, prompt)])

        if UNABLE_TO_FIX_SENTINEL in correction:
            logger.warning("tool_correction_declined", extra={"tool": failed.tool_name, "attempt": attempt + 1})
            raise CorrectionDeclinedError(
                f"LLM could not fix the call to {failed.tool_name}: {error}",
                tool_name=failed.tool_name,
                attempt=attempt + 1,
            ) from error

        corrected = extract_tool_calls(correction)
        if not corrected:
            logger.warning(
                "tool_correction_missing",
                extra={"tool": failed.tool_name, "attempt": attempt + 1, "response": correction[:500]},
            )
            raise CorrectionMissingError(
                f"LLM correction for {failed.tool_name} contained no tool call",
                tool_name=failed.tool_name,
                attempt=attempt + 1,
            ) from error

        logger.info(
            "tool_correction_received",
            extra={"tool": failed.tool_name, "attempt": attempt + 1,
                   "corrected": [c.model_dump() for c in corrected]},
        )
        return self.execute_with_recovery(
            [*corrected, *remaining],
            original_message,
            history,
            attempt=attempt + 1,
            max_attempts=limit,
            tools_context=tools_context,
            completed=completed,
        )
