from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.database import init_db, async_session_factory
from app.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status
from app.services.payout_service import PayoutError
from app.services.shop_client import ShopConfigurationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create missing tables
    - Start the monthly payout scheduler (when enabled)
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    if settings.PAYOUT_SCHEDULER_ENABLED:
        start_scheduler()
        logger.info("Background scheduler started")

    yield

    # Shutdown
    if settings.PAYOUT_SCHEDULER_ENABLED:
        shutdown_scheduler()
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Payouts", "description": "Monthly payout preview, generation, listing and status updates"},
    {"name": "Dashboard", "description": "Creator sales statistics, six-month trend and payout history"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

FULL_API_DESCRIPTION = """
## Creator Payouts API

Reconciles shop orders and refunds per creator product, computes net revenue
and commission, and generates monthly payouts.

### Authentication

- Batch endpoints (`/payouts/preview`, `/payouts/generate`) require
  `Authorization: Bearer <CRON_API_KEY>` when a cron key is configured.
- Creator endpoints read the creator id from the `X-Creator-Id` header set by
  the gateway. Admin endpoints require an admin profile.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Invalid period, manual amounts or date range |
| 401 | Unauthorized - Missing cron key or creator id |
| 403 | Forbidden - Admin access required |
| 404 | Not Found - Resource doesn't exist |
| 503 | Service Unavailable - Shop credentials not configured |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=FULL_API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(ShopConfigurationError)
async def shop_configuration_exception_handler(request: Request, exc: ShopConfigurationError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(PayoutError)
async def payout_exception_handler(request: Request, exc: PayoutError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Global exception handler for anything the endpoints did not map
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return error details; the traceback only in debug mode."""
    # Preserve HTTP status code for HTTPException, default to 500 for others
    if isinstance(exc, HTTPException):
        status_code = exc.status_code
        error_message = exc.detail
    else:
        status_code = 500
        error_message = str(exc)
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    error_detail = {
        "detail": error_message,
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    if settings.DEBUG:
        error_detail["traceback"] = traceback.format_exc()

    # Get origin from request
    origin = request.headers.get("origin", "")

    response = JSONResponse(
        status_code=status_code,
        content=error_detail
    )

    # Add CORS headers if origin is allowed
    if origin in settings.CORS_ORIGINS or "*" in settings.CORS_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "shop": "configured" if settings.shop_configured else "not configured",
            "scheduler": get_job_status() if settings.PAYOUT_SCHEDULER_ENABLED else "disabled",
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
