"""
Main FastAPI application for the StemBot document ingestion service.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stembot.config import settings
from stembot.database import close_db, init_db
from stembot.routers import documents, health, projects
from stembot.services.completion_client import CompletionClient

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _check_completion_endpoint() -> bool:
    """
    Verify the completion endpoint answers with the configured key.
    Never raises; without it summaries and suggestions use local fallbacks.
    """
    client = CompletionClient.from_settings()
    if not client.is_configured:
        logger.warning("⚠ OPENAI_API_KEY is not set — AI analysis will use local fallbacks")
        return False

    if await client.check_health():
        logger.info("✓ Completion endpoint reachable — model: %s", client.model)
        return True

    logger.warning(
        "⚠ Completion endpoint %s unreachable — AI analysis will use local fallbacks",
        client.base_url,
    )
    return False


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting StemBot ingestion service …")
    logger.info("=" * 60)

    # 1. Database (required; raises on failure)
    await _check_database()

    # 2. Completion endpoint (optional; logs warnings but continues)
    await _check_completion_endpoint()

    logger.info("=" * 60)
    logger.info("  StemBot ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down StemBot ingestion service …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="StemBot Ingestion API",
    description=(
        "**StemBot** — research-question coaching from uploaded documents.\n\n"
        "Upload papers, datasets, lab notes or images; StemBot extracts the text, "
        "summarises it, and suggests specific research questions.\n\n"
        "Key endpoints:\n"
        "- `POST /api/documents/analyze` — analyze one upload\n"
        "- `POST /api/documents/check-duplicates` — compare an upload with stored documents\n"
        "- `GET  /api/projects/{id}/documents` — stored documents of a project\n"
        "- `POST /api/projects/{id}/question-suggestions` — regenerate suggestions\n"
        "- `POST /api/projects/{id}/progress-check` — detect a stuck student\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "details": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,     prefix="/api/health",    tags=["Health"])
app.include_router(documents.router,  prefix="/api/documents", tags=["Documents"])
app.include_router(projects.router,   prefix="/api/projects",  tags=["Projects"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "StemBot Ingestion API",
        "version": "0.1.0",
        "description": "Document analysis and research-question suggestions",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "analyze": "/api/documents/analyze",
            "checkDuplicates": "/api/documents/check-duplicates",
            "projectDocuments": "/api/projects/{project_id}/documents",
            "questionSuggestions": "/api/projects/{project_id}/question-suggestions",
            "progressCheck": "/api/projects/{project_id}/progress-check",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stembot.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
