import logging
import random
import re
import time
import uuid
from typing import Callable, Optional

from google import genai
from google.genai import types

from app.config import Settings
from app.models.chat import Message, MessageRole
from app.services.errors import InvalidHistoryError, LLMUnavailableError
from app.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


def create_genai_client(settings: Settings) -> genai.Client:
    http_options = types.HttpOptions(timeout=int(settings.llm_timeout * 1000))
    # Gemini 3 preview models require API key (Express) access rather than standard Vertex AI ADC.
    # If GEMINI_API_KEY is set, use it; otherwise fall back to Vertex AI ADC (for GA models).
    if settings.gemini_api_key:
        return genai.Client(vertexai=True, api_key=settings.gemini_api_key, http_options=http_options)
    return genai.Client(
        vertexai=True,
        project=settings.google_cloud_project,
        location=settings.vertex_ai_location,
        http_options=http_options,
    )


_FALLBACK_RESPONSES = {
    "greeting": [
        "Hi! Sorry, the AI service is temporarily unavailable right now. Please try again in a few minutes.",
        "Hello! The AI system is momentarily overloaded. I'll be able to answer again shortly.",
    ],
    "question": [
        "Sorry, I can't answer questions right now because the AI service is temporarily unavailable. Please try again in a few minutes.",
        "The AI system is momentarily overloaded and can't process your request. Please try again shortly.",
    ],
    "tools": [
        "Sorry, I can't reach the data tools right now because the AI service is temporarily unavailable. Please try again in a few minutes.",
        "The AI system is overloaded and the tools are not available at the moment. Please try again shortly.",
    ],
    "default": [
        "Sorry, the AI service is temporarily unavailable. Please try again in a few minutes.",
        "We're experiencing technical problems with the AI service. Please try again shortly.",
    ],
}

_GREETING_RE = re.compile(r"\b(hello|hi|hey|good morning|good evening|ciao)\b", re.IGNORECASE)
_TOOL_RE = re.compile(r"\b(segments?|contacts?|events?|tenants?|tools?)\b", re.IGNORECASE)
_QUESTION_RE = re.compile(r"\?|\b(how|what|why|when|where)\b", re.IGNORECASE)


def _fallback_category(text: str) -> str:
    if _GREETING_RE.search(text):
        return "greeting"
    if _TOOL_RE.search(text):
        return "tools"
    if _QUESTION_RE.search(text):
        return "question"
    return "default"


def build_contents(history: list[Message]) -> list[types.Content]:
    """Convert stored message history into Gemini Content objects.

    System messages are dropped: Gemini has no system role in chat history.
    """
    contents = []
    for msg in history:
        if msg.role == MessageRole.SYSTEM:
            continue
        contents.append(types.Content(
            role="user" if msg.role == MessageRole.USER else "model",
            parts=[types.Part.from_text(text=msg.content)],
        ))
    return contents


def prompt_message(chat_id: str, content: str) -> Message:
    """An unsaved user-role message carrying an internal prompt."""
    return Message(id=f"prompt_{uuid.uuid4().hex[:12]}", chat_id=chat_id, role=MessageRole.USER, content=content)


class GeminiService:
    """Sends role-tagged history to Gemini, retrying transient failures."""

    def __init__(
        self,
        client: genai.Client,
        settings: Settings,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._model = settings.gemini_model
        self._generation_config = types.GenerateContentConfig(
            temperature=settings.gemini_temperature,
            top_p=0.8,
            top_k=40,
            max_output_tokens=settings.gemini_max_output_tokens,
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.llm_retry_attempts,
            base_delay=settings.llm_retry_base_delay,
        )
        self._sleep = sleep

    @property
    def model(self) -> str:
        return self._model

    def send(self, history: list[Message]) -> str:
        """Return Gemini's reply to the last (user) message of `history`.

        Raises InvalidHistoryError if the history is empty or does not end with a
        user message, and LLMUnavailableError once retries are exhausted or the
        failure is not transient.
        """
        if not history:
            raise InvalidHistoryError("Message history is empty")
        if history[-1].role != MessageRole.USER:
            raise InvalidHistoryError("Last message must be from user")

        return self._send_with_retry(build_contents(history), attempt=0)

    def _send_with_retry(self, contents: list[types.Content], attempt: int) -> str:
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=contents,
                config=self._generation_config,
            )
            text = response.text
            if not text:
                raise ValueError("Gemini returned an empty response")
            logger.info("gemini_response_received", extra={"attempt": attempt, "response_length": len(text)})
            return text

        except Exception as e:
            if self.retry_policy.should_retry(e, attempt):
                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    "llm_retry_scheduled",
                    extra={
                        "attempt": attempt + 1,
                        "max_attempts": self.retry_policy.max_attempts,
                        "delay_seconds": round(delay, 2),
                        "error": str(e),
                    },
                )
                self._sleep(delay)
                return self._send_with_retry(contents, attempt + 1)

            logger.error("gemini_request_failed", extra={"attempt": attempt, "error": str(e), "type": type(e).__name__})
            raise LLMUnavailableError(str(e) or type(e).__name__, attempts=attempt + 1) from e

    def send_with_fallback(self, history: list[Message]) -> str:
        """Like send(), but answers with canned degraded text when Gemini is unavailable."""
        try:
            return self.send(history)
        except LLMUnavailableError as e:
            logger.warning("gemini_fallback_response", extra={"error": e.cause_message})
            return self.fallback_response(history)

    def fallback_response(self, history: list[Message]) -> str:
        last = history[-1].content if history else ""
        return random.choice(_FALLBACK_RESPONSES[_fallback_category(last)])

    def test_connection(self) -> bool:
        probe = Message(id="test_message", chat_id="test_chat", role=MessageRole.USER,
                        content="Hello, this is a test message.")
        try:
            self.send([probe])
            return True
        except LLMUnavailableError as e:
            logger.error("gemini_connection_test_failed", extra={"error": e.cause_message})
            return False

    def generate_chat_title(self, user_message: str) -> str:
        """Generate a short 4-6 word title for a chat based on the first message."""
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=f'Generate a concise 4-6 word title for a chat that starts with this message. Return ONLY the title, no quotes or punctuation at the end.\n\nMessage: "{user_message}"',
            )
            title = (response.text or "").strip().strip('"').strip("'")
            return title[:60] or user_message[:50]
        except Exception as e:
            logger.error("title_generation_failed", extra={"error": str(e)})
            return user_message[:50]
