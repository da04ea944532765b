"""
Service wiring. Each component gets its collaborators through its
constructor; the instances below are built once per process and handed to
routes via FastAPI's Depends(), so tests can swap them with
app.dependency_overrides.
"""
import logging
from functools import lru_cache
from typing import Optional

from google.cloud import firestore

from app.config import Settings, get_settings
from app.services.chat_orchestrator import ConversationOrchestrator
from app.services.firestore_service import ChatStore
from app.services.gemini_service import GeminiService, create_genai_client
from app.services.mcp_client import McpClient
from app.services.mcp_context_service import McpContextService
from app.services.self_correction import ToolCallRecovery
from app.services.tool_executor import ToolExecutor

logger = logging.getLogger(__name__)


@lru_cache
def get_chat_store() -> ChatStore:
    return ChatStore(firestore.Client(project=get_settings().google_cloud_project))


@lru_cache
def get_gemini_service() -> GeminiService:
    settings = get_settings()
    return GeminiService(create_genai_client(settings), settings)


@lru_cache
def get_mcp_client() -> McpClient:
    settings = get_settings()
    return McpClient(
        settings.mcp_base_url,
        timeout=settings.mcp_timeout,
        health_timeout=settings.mcp_health_timeout,
        oauth_token=settings.mcp_oauth_token,
    )


def get_mcp_context_service() -> Optional[McpContextService]:
    settings = get_settings()
    if not settings.mcp_enabled:
        return None
    return _mcp_context_service()


@lru_cache
def _mcp_context_service() -> McpContextService:
    return McpContextService(get_mcp_client(), get_settings())


def build_orchestrator(
    settings: Settings,
    llm: GeminiService,
    mcp_client: Optional[McpClient] = None,
) -> ConversationOrchestrator:
    """Tool augmentation is wired only when an MCP client is given."""
    if mcp_client is None:
        return ConversationOrchestrator(llm, retry_after_seconds=settings.retry_after_seconds)

    context_service = McpContextService(mcp_client, settings)
    recovery = ToolCallRecovery(
        ToolExecutor(mcp_client),
        llm,
        context_service=context_service,
        max_attempts=settings.max_correction_attempts,
    )
    return ConversationOrchestrator(
        llm,
        context_service=context_service,
        recovery=recovery,
        tool_call_format=settings.tool_call_format,
        retry_after_seconds=settings.retry_after_seconds,
    )


@lru_cache
def get_orchestrator() -> ConversationOrchestrator:
    settings = get_settings()
    mcp_client = get_mcp_client() if settings.mcp_enabled else None
    return build_orchestrator(settings, get_gemini_service(), mcp_client)


def init_tool_server() -> None:
    """Check and initialize the MCP server; on failure, turns run without tools."""
    settings = get_settings()
    if not settings.mcp_enabled:
        logger.info("mcp_disabled")
        return

    client = get_mcp_client()
    orchestrator = get_orchestrator()
    if not client.health_check():
        orchestrator.disable_tools("mcp_server_unhealthy")
        return
    if not client.initialize():
        orchestrator.disable_tools("mcp_initialize_failed")
        return
    logger.info("mcp_ready", extra={"base_url": settings.mcp_base_url})
