"""
Tasting AI — FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application.
How:   `create_app()` registers middleware, exception handlers and routes.
       The lifespan builds the PipelineService from settings (unless one was
       injected), creates missing tables, and disposes the engine on
       shutdown.
Who:   uvicorn (`uvicorn tasting_ai.main:app`) and the route tests, which
       inject a service wired to a temporary database and stub providers.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │  Middleware:  Request ID → Logging → GZip → CORS    │
    │  Routes:      /api/pipeline/*   /health             │
    │  Errors:      exc.http_status + exc.error_code      │
    │               anything else → 500                   │
    └─────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from tasting_ai import __version__
from tasting_ai.config import Settings, settings as default_settings
from tasting_ai.exceptions import TastingAIError
from tasting_ai.middleware.logging import RequestLoggingMiddleware
from tasting_ai.middleware.request_id import RequestIDMiddleware, current_request_id
from tasting_ai.routes import health, pipeline
from tasting_ai.services.pipeline_service import PipelineService, build_pipeline_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str) -> None:
    """
    Configure the root logger once, at startup.

    Format: 2024-01-15T12:00:00 [INFO] tasting_ai.services.orchestrator: message
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map domain exceptions to JSON error bodies.

    Pipeline step failures never reach here (they are inside the session);
    these cover request-level errors only. 4xx bodies carry the exception
    message and context; 5xx bodies are generic and the context is only
    logged.
    """

    @app.exception_handler(TastingAIError)
    async def handle_app_error(request: Request, exc: TastingAIError):
        rid = current_request_id()
        body = {"error": exc.error_code, "message": exc.message, "request_id": rid}
        if exc.is_client_error:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            if exc.context:
                body["details"] = exc.context
        else:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
            body["message"] = "An internal error occurred. Please try again later."
        return JSONResponse(status_code=exc.http_status, content=body)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = current_request_id()
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    service: Optional[PipelineService] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Args:
        service:      pre-built PipelineService (tests); built in lifespan if None
        app_settings: settings to build from; defaults to the env-loaded ones
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # ── Startup ───────────────────────────────────────────────────────
        setup_logging(app_settings.log_level)
        logger.info("=" * 60)
        logger.info("Tasting AI starting up...")

        try:
            app_settings.validate_required_for_production()
        except ValueError as e:
            # Keep serving: runs return sessions with configuration failures
            logger.error("Configuration error: %s", str(e))

        owns_service = getattr(app.state, "pipeline_service", None) is None
        if owns_service:
            app.state.pipeline_service = build_pipeline_service(app_settings)
        await app.state.pipeline_service.database.create_all()

        logger.info(
            "Server ready at http://%s:%d",
            app_settings.backend_host,
            app_settings.backend_port,
        )
        logger.info("=" * 60)

        yield

        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("Tasting AI shutting down...")
        if owns_service:
            await app.state.pipeline_service.close()
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Tasting AI",
        description=(
            "AI orchestration for wine tasting captures: label recognition, "
            "voice transcription and WSET-structured analysis."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    if service is not None:
        app.state.pipeline_service = service

    # Executed in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware, slow_request_ms=app_settings.slow_request_ms)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(pipeline.router)
    app.include_router(health.router)

    return app


# uvicorn expects `tasting_ai.main:app`
app = create_app()
