import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from app.dependencies import get_chat_store, get_gemini_service, get_mcp_context_service, get_orchestrator
from app.services.chat_orchestrator import ConversationOrchestrator
from app.services.firestore_service import ChatStore
from app.services.gemini_service import GeminiService
from app.services.mcp_context_service import McpContextService

logger = logging.getLogger(__name__)
router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
def health_check(
    store: ChatStore = Depends(get_chat_store),
    llm: GeminiService = Depends(get_gemini_service),
    mcp: Optional[McpContextService] = Depends(get_mcp_context_service),
):
    """Overall status of the database, Gemini and the MCP server."""
    services = {
        "database": store.test_connection(),
        "gemini": llm.test_connection(),
        "mcp": mcp.client.health_check() if mcp else False,
    }
    status = "ok" if all(services.values()) else "degraded"
    logger.info("health_checked", extra={"status": status, **services})
    return {"status": status, "timestamp": _now(), "services": services}


@router.get("/health/mcp")
def mcp_status(
    mcp: Optional[McpContextService] = Depends(get_mcp_context_service),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    if mcp is None:
        return {"success": False, "message": "MCP is not enabled", "mcpEnabled": False}
    return {
        "success": True,
        "data": mcp.get_status().model_dump(),
        "mcpEnabled": orchestrator.tools_enabled,
    }


@router.get("/test/gemini")
def test_gemini(llm: GeminiService = Depends(get_gemini_service)):
    connected = llm.test_connection()
    return {
        "success": connected,
        "message": "Gemini API connection successful" if connected else "Gemini API connection failed",
        "timestamp": _now(),
    }


@router.get("/test/database")
def test_database(store: ChatStore = Depends(get_chat_store)):
    connected = store.test_connection()
    return {
        "success": connected,
        "message": "Database connection successful" if connected else "Database connection failed",
        "timestamp": _now(),
    }
