"""
FastAPI Application
==================

Main FastAPI application for the render service.
Owns the session manager for the lifetime of the process: warm start at
startup, idle monitor while running, engine shutdown before exit.
"""

from contextlib import asynccontextmanager
import time
import uuid
from typing import AsyncGenerator, Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from snapcard.config.settings import get_settings, Settings
from snapcard.config.logging import get_logger
from snapcard.core.errors import RenderError
from snapcard.core.rendering.engine import EngineLauncher
from snapcard.core.rendering.markup_builder import MarkupBuilder
from snapcard.core.rendering.render_pipeline import RenderPipeline
from snapcard.core.rendering.service import RenderService
from snapcard.core.rendering.session_manager import SessionManager
from snapcard.api.routes.health import router as health_router
from snapcard.api.routes.render import router as render_router
from snapcard.models.schemas import ErrorResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    launcher: Optional[EngineLauncher] = getattr(app.state, "engine_launcher", None)

    # Startup
    logger.info("Starting render service", environment=settings.environment)

    session_manager = SessionManager(settings, launcher=launcher)
    pipeline = RenderPipeline(session_manager, settings)
    app.state.render_service = RenderService(pipeline, MarkupBuilder(settings), settings)
    app.state.started_at = time.monotonic()

    if settings.warm_start:
        ready = await session_manager.warm_start()
        logger.info("Warm start finished", engine_ready=ready)

    session_manager.start_idle_monitor()

    try:
        yield
    finally:
        # Shutdown
        logger.info("Shutting down render service")
        try:
            await session_manager.shutdown()
            logger.info("Browser engine closed")
        except Exception as e:
            logger.error("Error closing browser engine", error=str(e))
        app.state.render_service = None


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


async def add_request_id(request: Request, call_next) -> Any:  # type: ignore
    """Add request ID to all requests."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


async def render_error_handler(request: Request, exc: RenderError) -> JSONResponse:
    """Map classified render failures onto structured error responses."""
    settings: Settings = request.app.state.settings
    show_details = exc.status_code < 500 or settings.debug

    error_response = ErrorResponse(
        error=exc.message,
        error_code=exc.error_code,
        details=exc.details if show_details and exc.details else None,
        request_id=_request_id(request),
    )

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Render request failed",
        status_code=exc.status_code,
        error_code=exc.error_code,
        error=exc.message,
        request_id=error_response.request_id,
    )

    return JSONResponse(
        status_code=exc.status_code, content=error_response.model_dump(mode="json")
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request body validation failures use the same envelope as render errors."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    error_response = ErrorResponse(
        error="Invalid render request",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
        request_id=_request_id(request),
    )

    logger.warning(
        "Request validation failed", errors=len(errors), request_id=error_response.request_id
    )

    return JSONResponse(status_code=400, content=error_response.model_dump(mode="json"))


async def custom_http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom HTTP exception handler with structured error response."""
    error_response = ErrorResponse(
        error=str(exc.detail),
        error_code=str(exc.status_code),
        details=None,
        request_id=_request_id(request),
    )

    logger.error(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=error_response.request_id,
    )

    return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(mode="json"))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """General exception handler for unexpected errors."""
    settings: Settings = request.app.state.settings
    error_response = ErrorResponse(
        error="Internal server error",
        error_code="INTERNAL_ERROR",
        details={"exception": str(exc)[:300]} if settings.debug else None,
        request_id=_request_id(request),
    )

    logger.error(
        "Unhandled exception",
        exception=str(exc)[:300],
        request_id=error_response.request_id,
        exc_info=True,
    )

    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))


def create_app(
    settings: Optional[Settings] = None, launcher: Optional[EngineLauncher] = None
) -> FastAPI:
    """
    Application factory function for creating FastAPI app instance.

    Args:
        settings: Settings override; the global settings when omitted
        launcher: Engine launcher override; Playwright Chromium when omitted

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Render headline cards and raw markup to raster images",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.engine_launcher = launcher
    app.state.render_service = None

    app.middleware("http")(add_request_id)

    app.add_exception_handler(RenderError, render_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, custom_http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(render_router)
    app.include_router(health_router)

    @app.get("/", tags=["General"])
    async def root() -> dict[str, Any]:
        """Root endpoint with basic API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "health_check": "/health",
            "endpoints": {
                "render": "POST /api/v1/render",
                "generate_image": "POST /generate-image",
                "health": "GET /health",
            },
        }

    return app


app = create_app()


def run_server() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "snapcard.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run_server()
