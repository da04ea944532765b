import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.dependencies import init_tool_server
from app.routers import chat, health

# ── Logging setup ─────────────────────────────────────────────────────────────
# Always configure a stdout handler so logs appear in the local terminal.
# On Cloud Run (K_SERVICE is set), additionally route to Cloud Logging.

class _ExtraFormatter(logging.Formatter):
    """Formatter that appends extra={} fields to the log line for local visibility."""
    _BASE_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__)

    def format(self, record):
        msg = super().format(record)
        extras = {k: v for k, v in record.__dict__.items()
                  if k not in self._BASE_ATTRS and k not in ("message", "asctime")}
        if extras:
            msg += f" | {extras}"
        return msg

_handler = logging.StreamHandler()
_handler.setFormatter(_ExtraFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
logging.root.setLevel(logging.INFO)
logging.root.addHandler(_handler)

if os.environ.get("K_SERVICE"):
    # Running on Cloud Run, also send structured logs to Cloud Logging
    try:
        import google.cloud.logging
        cloud_logging_client = google.cloud.logging.Client()
        cloud_logging_client.setup_logging()
    except Exception as e:
        logging.warning("cloud_logging_setup_failed: %s", e)

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await run_in_threadpool(init_tool_server)
    yield


# ── App ────────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Tool Chat API",
    description="Chat backend that answers with Gemini and calls MCP tools when a question needs live data.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────────────────────────
app.include_router(chat.router,   prefix="/api/chats", tags=["chats"])
app.include_router(health.router, prefix="/api",       tags=["health"])

# ── Global exception handler ───────────────────────────────────────────────────
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error": str(exc),
            "type": type(exc).__name__,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. It has been logged."},
    )

# ── Health check ───────────────────────────────────────────────────────────────
@app.get("/health", tags=["health"])
def liveness():
    """Used by Cloud Run health checks."""
    return {"status": "ok"}


logger.info("tool_chat_api_started", extra={"cors_origins": list(settings.cors_origins), "mcp_enabled": settings.mcp_enabled})
