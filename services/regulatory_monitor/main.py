"""
Regulatory Monitor Service - Main Application
=============================================

FastAPI application for regulatory source monitoring, AI rule change
suggestions, suggestion review and rule administration.

Version: 0.1.0
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.regulatory_monitor.change_detection import ChangeMonitor
from services.regulatory_monitor.exceptions import RegulatoryMonitorError
from services.regulatory_monitor.routes import (
    audit,
    checks,
    rules,
    sources,
    states,
    suggestions,
)
from services.regulatory_monitor.scrapers import FetcherConfigurationError
from shared.config import settings
from shared.database.postgres import PostgresClient
from shared.llm import LLMError
from shared.logging import get_logger, setup_logging
from shared.models.common import HealthResponse


# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name="regulatory-monitor",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    logger.info(
        "regulatory_monitor_starting",
        environment=settings.environment.value,
        port=settings.ports.regulatory_monitor,
    )

    # Startup
    try:
        PostgresClient.get_engine()
        logger.info("postgres_connected")
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    monitor: ChangeMonitor | None = None
    monitor_task: asyncio.Task[None] | None = None
    if settings.monitor.scheduler_enabled:
        monitor = ChangeMonitor()
        monitor_task = asyncio.create_task(monitor.start())

    yield

    # Shutdown
    logger.info("regulatory_monitor_shutting_down")
    if monitor is not None and monitor_task is not None:
        await monitor.stop()
        monitor_task.cancel()
        try:
            await monitor_task
        except asyncio.CancelledError:
            logger.debug("change_monitor_task_cancelled")
    await PostgresClient.close()


# Create FastAPI application
app = FastAPI(
    title="Labelwise Regulatory Monitor Service",
    description="Regulatory change detection, rule suggestions and rule administration",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins_list,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Service health check.

    Returns health status of the service and its database.
    """
    components: dict[str, dict[str, Any]] = {
        "postgres": await PostgresClient.health_check(),
        "scheduler": {
            "status": "healthy",
            "enabled": settings.monitor.scheduler_enabled,
        },
    }
    all_healthy = all(c.get("status") == "healthy" for c in components.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service="regulatory-monitor",
        version="0.1.0",
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Labelwise Regulatory Monitor Service",
        "version": "0.1.0",
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    states.router,
    prefix="/api/v1/states",
    tags=["States"],
)

app.include_router(
    sources.router,
    prefix="/api/v1/sources",
    tags=["Sources"],
)

app.include_router(
    rules.router,
    prefix="/api/v1/rules",
    tags=["Rules"],
)

app.include_router(
    checks.router,
    prefix="/api/v1/checks",
    tags=["Checks"],
)

app.include_router(
    suggestions.router,
    prefix="/api/v1/suggestions",
    tags=["Suggestions"],
)

app.include_router(
    audit.router,
    prefix="/api/v1/audit",
    tags=["Audit"],
)


# ============================================================================
# Error Handlers
# ============================================================================


def error_response(status_code: int, error: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "status_code": status_code},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Any, exc: HTTPException) -> Any:
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return error_response(exc.status_code, exc.detail)


@app.exception_handler(RegulatoryMonitorError)
async def domain_exception_handler(request: Any, exc: RegulatoryMonitorError) -> Any:
    """Handle review, rule editor and registry errors."""
    logger.warning(
        "regulatory_monitor_error",
        status_code=exc.status_code,
        error=exc.message,
        path=request.url.path,
    )
    return error_response(exc.status_code, exc.message)


@app.exception_handler(LLMError)
async def llm_exception_handler(request: Any, exc: LLMError) -> Any:
    """AI provider failures keep 429 and 402; everything else is a 500."""
    logger.error(
        "llm_request_failed",
        provider=exc.provider,
        status_code=exc.status_code,
        error=exc.message,
        path=request.url.path,
    )
    return error_response(exc.status_code, exc.message)


@app.exception_handler(FetcherConfigurationError)
async def fetcher_config_exception_handler(request: Any, exc: FetcherConfigurationError) -> Any:
    logger.error("fetcher_not_configured", error=str(exc), path=request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Any, exc: Exception) -> Any:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ============================================================================
# Run with Uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.regulatory_monitor.main:app",
        host="0.0.0.0",
        port=settings.ports.regulatory_monitor,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )
