"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, runs
from core.config import settings
from core.database import dispose_engine
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import IngestionScheduler
from schemas.api import ErrorResponse

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="GeoNames Ingestion API",
    description="Status of GeoNames bulk-replace ingestion runs",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Scheduler is created on startup, only when enabled
scheduler = None


# Include routers
app.include_router(health.router)
app.include_router(runs.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal server error", detail=str(exc)).model_dump(mode="json")
    )


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    global scheduler
    logger.info("Starting GeoNames Ingestion API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULE_ENABLED:
        scheduler = IngestionScheduler(settings)
        scheduler.start()
    else:
        logger.info("Scheduled ingestion disabled (SCHEDULE_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    global scheduler
    logger.info("Shutting down GeoNames Ingestion API")
    if scheduler is not None:
        await scheduler.stop()
        scheduler = None
    await dispose_engine()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "GeoNames Ingestion API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "runs": "/runs",
            "errors": "/errors"
        }
    }
