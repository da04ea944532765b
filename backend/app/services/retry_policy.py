import logging
import random
from typing import Callable

logger = logging.getLogger(__name__)

# Gemini surfaces failures as free-form text, so transient errors are
# recognised by substring rather than by status code.
# google-genai renders APIError as "<code> <STATUS>. <details>".
RETRYABLE_ERROR_PATTERNS = (
    "503 service unavailable",
    "service unavailable",
    "503 unavailable",
    "unavailable",
    "the model is overloaded",
    "overloaded",
    "rate limit exceeded",
    "quota exceeded",
    "resource_exhausted",
    "internal server error",
    "500 internal",
    "internal error",
    "bad gateway",
    "gateway timeout",
    "504",
    "deadline_exceeded",
    "deadline expired",
    "timed out",
    "too many requests",
)

MAX_DELAY_SECONDS = 30.0
MAX_JITTER_SECONDS = 1.0


def is_retryable_error(error: BaseException) -> bool:
    if error is None:
        return False
    message = (str(error) or type(error).__name__).lower()
    return any(pattern in message for pattern in RETRYABLE_ERROR_PATTERNS)


class RetryPolicy:
    """Exponential backoff with jitter for transient LLM failures."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = MAX_DELAY_SECONDS,
        jitter: Callable[[], float] = lambda: random.uniform(0, MAX_JITTER_SECONDS),
    ):
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._jitter = jitter

    def should_retry(self, error: BaseException, attempt: int, max_attempts: int | None = None) -> bool:
        limit = self.max_attempts if max_attempts is None else max_attempts
        if attempt >= limit:
            return False
        return is_retryable_error(error)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number `attempt + 1`."""
        delay = self.base_delay * (2 ** attempt) + self._jitter()
        return min(delay, self.max_delay)
