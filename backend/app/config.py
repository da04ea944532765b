import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

TOOL_CALL_FORMAT = 'TOOL_CALL:toolName:{"param1":"value1","param2":"value2"}'

TOOL_SYSTEM_PROMPT = """You are an AI assistant with access to MCP (Model Context Protocol) tools.
When users ask questions that can be answered using available tools, use them.
Always provide helpful and clear explanations based on the tool results."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_ms_as_seconds(name: str, default_seconds: float) -> float:
    """Millisecond env values (GEMINI_RETRY_DELAY=1000) as seconds."""
    return _env_int(name, int(default_seconds * 1000)) / 1000.0


@dataclass(frozen=True)
class Settings:
    google_cloud_project: Optional[str] = None
    vertex_ai_location: str = "global"
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_key: Optional[str] = None
    gemini_temperature: float = 0.7
    gemini_max_output_tokens: int = 2048

    llm_retry_attempts: int = 3
    llm_retry_base_delay: float = 1.0
    llm_timeout: float = 60.0

    mcp_enabled: bool = False
    mcp_base_url: str = "http://localhost:8080"
    mcp_timeout: float = 10.0
    mcp_oauth_token: Optional[str] = None
    mcp_health_timeout: float = 5.0
    max_correction_attempts: int = 2
    tool_system_prompt: str = TOOL_SYSTEM_PROMPT
    tool_call_format: str = TOOL_CALL_FORMAT

    retry_after_seconds: int = 60
    cors_origins: tuple[str, ...] = field(default=("http://localhost:5173",))


def load_settings() -> Settings:
    """Read Settings from the process environment (and .env, if present)."""
    load_dotenv()

    return Settings(
        google_cloud_project=os.getenv("GOOGLE_CLOUD_PROJECT"),
        vertex_ai_location=os.getenv("VERTEX_AI_LOCATION", "global"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_temperature=_env_float("GEMINI_TEMPERATURE", 0.7),
        gemini_max_output_tokens=_env_int("GEMINI_MAX_OUTPUT_TOKENS", 2048),
        llm_retry_attempts=_env_int("GEMINI_RETRY_ATTEMPTS", 3),
        llm_retry_base_delay=_env_ms_as_seconds("GEMINI_RETRY_DELAY", 1.0),
        llm_timeout=_env_ms_as_seconds("GEMINI_TIMEOUT", 60.0),
        mcp_enabled=os.getenv("MCP_ENABLED", "false").lower() == "true",
        mcp_base_url=os.getenv("MCP_SERVER_URL", "http://localhost:8080").rstrip("/"),
        mcp_timeout=_env_ms_as_seconds("MCP_TIMEOUT", 10.0),
        mcp_oauth_token=os.getenv("MCP_OAUTH_TOKEN"),
        max_correction_attempts=_env_int("MCP_MAX_CORRECTION_ATTEMPTS", 2),
        retry_after_seconds=_env_int("AI_RETRY_AFTER_SECONDS", 60),
        cors_origins=tuple(os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
