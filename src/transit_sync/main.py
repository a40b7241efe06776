"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from transit_sync.config import Settings, get_settings
from transit_sync.context import PipelineContext, build_context
from transit_sync.database import check_database_connection, create_schema
from transit_sync.errors import FatalError, PipelineError
from transit_sync.logging import (
    bind_log_context,
    clear_log_context,
    get_logger,
    setup_logging,
)
from transit_sync.routers.imports import router as imports_router
from transit_sync.routers.realtime import router as realtime_router
from transit_sync.services.gtfs_rt.poller import RealtimePoller
from transit_sync.services.workflow.runner import WorkflowRunner

logger = get_logger(__name__)


def attach_services(app: FastAPI, context: PipelineContext) -> None:
    """Put the pipeline context, workflow runner and poller on ``app.state``."""
    app.state.context = context
    app.state.runner = WorkflowRunner(context)
    app.state.poller = RealtimePoller(context)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info("Starting transit sync service", environment=settings.environment)

    context = build_context(settings)
    if settings.auto_create_schema:
        await create_schema(context.engine)
    attach_services(app, context)

    if settings.realtime_auto_start:
        await app.state.poller.start()

    yield

    await app.state.poller.stop()
    await app.state.runner.shutdown()
    logger.info("Shutting down transit sync service")
    await context.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Durable GTFS static import and GTFS-Realtime synchronization",
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )
    app.state.settings = settings

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_log_context(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_log_context()
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(imports_router)
    app.include_router(realtime_router)

    # Health endpoint
    @app.get("/health", tags=["meta"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Health check endpoint returning application status."""
        context: PipelineContext = request.app.state.context
        missing_env = settings.missing_required_env()
        db_healthy = await check_database_connection(context.engine)

        poller_status = await request.app.state.poller.get_status()
        rt_healthy = poller_status["running"] or not settings.realtime_auto_start

        status = (
            "unhealthy" if missing_env else "healthy" if (db_healthy and rt_healthy) else "degraded"
        )

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))
        if settings.realtime_auto_start and not poller_status["running"]:
            issues.append("GTFS-RT poller is not running")

        return {
            "service": settings.app_name,
            "status": status,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "database": db_healthy,
                "realtime": {
                    "pollerRunning": poller_status["running"],
                    "pollCount": poller_status["poll_count"],
                    "lastPollAt": poller_status["last_poll_at"],
                },
            },
            "issues": issues,
        }

    @app.exception_handler(FatalError)
    async def fatal_error_handler(request: Request, exc: FatalError) -> JSONResponse:
        logger.warning("Request failed", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=400,
            content={"error": type(exc).__name__, "message": str(exc)},
        )

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        logger.error("Pipeline error", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=503,
            content={"error": type(exc).__name__, "message": str(exc)},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
