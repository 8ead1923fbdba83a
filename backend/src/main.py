# pyright: reportMissingTypeStubs=false
"""
Locum Match Backend API

A FastAPI application exposing the appointment matching and confirmation
lifecycle of a locum marketplace.

Features:
- Request / application / selection / confirmation / booking lifecycle
- Auto-cancellation of unclaimed requests with restart recovery
- Late-cancellation rules and penalty records
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments
from core.constants import CORS_ORIGINS
from core.database import create_tables
from services.auto_cancel_scheduler import get_auto_cancel_scheduler
from services.errors import LifecycleError
from services.lifecycle_engine import get_lifecycle_engine
from services.sweep_scheduler import start_sweep_scheduler, stop_sweep_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🩺 Locum Match API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Locum Match Backend API")

    create_tables()

    # Timers are process-local: re-arm them from the persisted deadlines
    try:
        get_auto_cancel_scheduler().start()
        get_lifecycle_engine().restore_timers()
        logger.info("✅ Auto-cancel scheduler started")
    except Exception as e:
        logger.exception(f"❌ Failed to start auto-cancel scheduler: {e}")

    try:
        await start_sweep_scheduler()
        logger.info("✅ Lifecycle sweep scheduler started")
    except Exception as e:
        logger.exception(f"❌ Failed to start sweep scheduler: {e}")

    yield

    try:
        await stop_sweep_scheduler()
        logger.info("🛑 Lifecycle sweep scheduler stopped")
    except Exception as e:
        logger.exception(f"❌ Error stopping sweep scheduler: {e}")

    try:
        get_auto_cancel_scheduler().shutdown()
    except Exception as e:
        logger.exception(f"❌ Error stopping auto-cancel scheduler: {e}")

    logger.info("🛑 Shutting down Locum Match Backend API")


# Create FastAPI application
app = FastAPI(
    title="Locum Match Backend",
    description="Appointment matching and confirmation lifecycle for a locum marketplace",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    appointments.router,
    prefix="/api",
    tags=["appointments"],
    responses={
        400: {"description": "Bad request"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        503: {"description": "Timed out, safe to retry"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Locum Match Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    """Map lifecycle errors to their HTTP status."""
    logger.info(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": exc.error_type},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
