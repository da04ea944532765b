"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from app import config
from app.config import load_settings

_ENV_VARS = (
    "GOOGLE_CLOUD_PROJECT", "GEMINI_MODEL", "GEMINI_RETRY_ATTEMPTS", "GEMINI_RETRY_DELAY", "GEMINI_TIMEOUT",
    "MCP_ENABLED", "MCP_SERVER_URL", "MCP_TIMEOUT", "MCP_MAX_CORRECTION_ATTEMPTS", "AI_RETRY_AFTER_SECONDS",
    "CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = load_settings()

    assert settings.mcp_enabled is False
    assert settings.llm_retry_attempts == 3
    assert settings.llm_retry_base_delay == 1.0
    assert settings.max_correction_attempts == 2
    assert settings.retry_after_seconds == 60
    assert settings.tool_call_format.startswith("TOOL_CALL:")


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCP_ENABLED", "true")
    monkeypatch.setenv("MCP_SERVER_URL", "http://tools.internal:8080/")
    monkeypatch.setenv("MCP_TIMEOUT", "2500")
    monkeypatch.setenv("GEMINI_RETRY_DELAY", "250")
    monkeypatch.setenv("GEMINI_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("MCP_MAX_CORRECTION_ATTEMPTS", "1")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test,http://b.test")

    settings = load_settings()

    assert settings.mcp_enabled is True
    assert settings.mcp_base_url == "http://tools.internal:8080"
    assert settings.mcp_timeout == 2.5
    assert settings.llm_retry_base_delay == 0.25
    assert settings.llm_retry_attempts == 5
    assert settings.max_correction_attempts == 1
    assert settings.cors_origins == ("http://a.test", "http://b.test")


def test_invalid_integer_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_RETRY_ATTEMPTS", "three")

    with pytest.raises(ValueError, match="GEMINI_RETRY_ATTEMPTS"):
        load_settings()
