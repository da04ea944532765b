"""
Parsing of the TOOL_CALL text convention the LLM is prompted to follow:

    TOOL_CALL:<toolName>:<jsonArguments>

A response may contain any number of markers. The JSON payload of each one is
delimited by brace-depth counting from the first "{" after the marker, so
nested objects in the arguments are handled.
"""
import json
import logging
import re

from app.models.tools import ToolInvocation

logger = logging.getLogger(__name__)

TOOL_CALL_MARKER = "TOOL_CALL"

_MARKER_RE = re.compile(r"TOOL_CALL:(\w+):")


def _find_payload_end(text: str, start: int) -> int:
    """Index of the "}" that closes the "{" at `start`, or -1 if unterminated."""
    depth = 0
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def extract_tool_calls(response_text: str) -> list[ToolInvocation]:
    """Return every well-formed tool invocation in `response_text`, in order.

    Markers without a JSON object, with unbalanced braces or with invalid JSON
    are logged and skipped.
    """
    invocations: list[ToolInvocation] = []
    if not response_text:
        return invocations

    for match in _MARKER_RE.finditer(response_text):
        tool_name = match.group(1)

        json_start = match.end()
        while json_start < len(response_text) and response_text[json_start].isspace():
            json_start += 1

        if json_start >= len(response_text) or response_text[json_start] != "{":
            logger.warning("tool_call_missing_arguments", extra={"tool": tool_name})
            continue

        json_end = _find_payload_end(response_text, json_start)
        if json_end < 0:
            logger.warning(
                "tool_call_unterminated_arguments",
                extra={"tool": tool_name, "fragment": response_text[match.start():match.start() + 200]},
            )
            continue

        raw = response_text[json_start:json_end + 1]
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(
                "tool_call_parse_failed",
                extra={"tool": tool_name, "error": str(e), "raw_arguments": raw[:500]},
            )
            continue

        if not isinstance(arguments, dict):
            logger.warning("tool_call_arguments_not_object", extra={"tool": tool_name})
            continue

        invocations.append(ToolInvocation(tool_name=tool_name, arguments=arguments))

    if invocations:
        logger.info(
            "tool_calls_extracted",
            extra={"count": len(invocations), "tools": [inv.tool_name for inv in invocations]},
        )
    return invocations


def format_tool_call(invocation: ToolInvocation) -> str:
    """Render an invocation back into the TOOL_CALL text convention."""
    return f"{TOOL_CALL_MARKER}:{invocation.tool_name}:{json.dumps(invocation.arguments)}"
