"""
Label Compliance Service - Main Application
===========================================

FastAPI application for label panel extraction, rule scoring, check history
and compliance reports.

Version: 0.1.0
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.label_compliance.exceptions import LabelComplianceError
from services.label_compliance.routes import analysis, checks, custom_rules
from services.label_compliance.scoring import ScoringParseError
from shared.config import settings
from shared.database.postgres import PostgresClient
from shared.llm import LLMError
from shared.logging import get_logger, setup_logging
from shared.models.common import HealthResponse
from shared.storage import StorageError, get_object_store


# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name="label-compliance",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    logger.info(
        "label_compliance_starting",
        environment=settings.environment.value,
        port=settings.ports.label_compliance,
    )

    # Startup
    try:
        PostgresClient.get_engine()
        logger.info("postgres_connected")

        await get_object_store().ensure_buckets()
        logger.info("object_store_ready")

    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("label_compliance_shutting_down")
    await PostgresClient.close()


# Create FastAPI application
app = FastAPI(
    title="Labelwise Label Compliance Service",
    description="Label panel extraction and compliance scoring",
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
    """Service health check."""
    components: dict[str, dict[str, Any]] = {
        "postgres": await PostgresClient.health_check(),
    }
    all_healthy = all(c.get("status") == "healthy" for c in components.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service="label-compliance",
        version="0.1.0",
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Labelwise Label Compliance Service",
        "version": "0.1.0",
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    checks.router,
    prefix="/api/v1/checks",
    tags=["Checks"],
)

app.include_router(
    custom_rules.router,
    prefix="/api/v1/custom-rules",
    tags=["Custom Rules"],
)

app.include_router(
    analysis.router,
    prefix="/api/v1/analyze-label",
    tags=["Analysis"],
)


# ============================================================================
# Error Handlers
# ============================================================================


def error_response(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "status_code": status_code, **extra},
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


@app.exception_handler(LabelComplianceError)
async def domain_exception_handler(request: Any, exc: LabelComplianceError) -> Any:
    """Handle check workflow errors."""
    logger.warning(
        "label_compliance_error",
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


@app.exception_handler(ScoringParseError)
async def scoring_parse_exception_handler(request: Any, exc: ScoringParseError) -> Any:
    logger.error("scoring_parse_failed", path=request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        exc.message,
        rawResponse=exc.raw_response,
    )


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Any, exc: StorageError) -> Any:
    logger.error("storage_request_failed", error=str(exc), path=request.url.path)
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
        "services.label_compliance.main:app",
        host="0.0.0.0",
        port=settings.ports.label_compliance,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )
