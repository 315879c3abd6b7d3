"""FastAPI application entry point."""

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from incident_hub.config import settings
from incident_hub.api.v1.router import api_router
from incident_hub.db.session import engine
from incident_hub.models.base import Base
from incident_hub.middleware import RequestLoggingMiddleware, setup_logging
from incident_hub.core.exceptions import register_exception_handlers
from incident_hub.services.geocoding import reverse_geocoder
from incident_hub.services.locks import RedisLockManager, get_lock_manager


# Setup logging early
setup_logging()
logger = logging.getLogger(__name__)


def validate_startup_security() -> None:
    """
    Validate security configuration at startup.
    Exits with error in production if security requirements not met.
    """
    errors = settings.validate_production_settings()

    if errors:
        logger.error("=" * 60)
        logger.error("SECURITY CONFIGURATION ERRORS")
        logger.error("=" * 60)
        for error in errors:
            logger.error(f"  - {error}")
        logger.error("=" * 60)

        if settings.is_production():
            logger.critical("Refusing to start in production with insecure configuration!")
            sys.exit(1)

    if not settings.is_production():
        logger.warning(
            "Running in development mode with insecure defaults. "
            "DO NOT use this configuration in production!"
        )

    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Dedup locks: {settings.dedup_lock_backend}")
    logger.info(f"Reverse geocoding: {'enabled' if settings.geocoding_enabled else 'disabled'}")
    logger.info(f"Debug Mode: {settings.debug}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    validate_startup_security()
    os.makedirs(settings.upload_dir, exist_ok=True)

    # Create database tables if they don't exist
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        if settings.is_production():
            sys.exit(1)

    logger.info(f"{settings.app_name} started successfully")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await reverse_geocoder.close()
    lock_manager = get_lock_manager()
    if isinstance(lock_manager, RedisLockManager):
        await lock_manager.close()
    await engine.dispose()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
Citizen incident reporting API: geotagged reports with media, duplicate
linking, responder triage and verification, and a points and rewards ledger.

## Authentication

Register or log in to obtain a bearer token and send it on every request:

```
Authorization: Bearer <access_token>
```

## Error Responses

All errors follow a consistent format:
```json
{
  "error": {
    "code": "ERROR_CODE",
    "message": "Human-readable message",
    "request_id": "abc123"
  }
}
```
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
    openapi_url="/openapi.json" if not settings.is_production() else None,
)

# ============================================================================
# Register Exception Handlers (before middleware)
# ============================================================================
register_exception_handlers(app)

# ============================================================================
# Middleware Stack (order matters - first added = last executed)
# ============================================================================

# 1. Request logging (outermost - captures everything)
app.add_middleware(RequestLoggingMiddleware)

# 2. CORS (innermost for preflight handling)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,  # Restricted, not ["*"]
    allow_headers=settings.cors_allow_headers,  # Restricted, not ["*"]
    expose_headers=["X-Request-ID"],
    max_age=600,  # Cache preflight for 10 minutes
)


# ============================================================================
# API Routes
# ============================================================================

app.include_router(api_router, prefix="/api/v1")

# Uploaded incident media
app.mount(
    settings.upload_url_prefix,
    StaticFiles(directory=settings.upload_dir, check_dir=False),
    name="uploads",
)


# ============================================================================
# Health and Root Endpoints (no authentication required)
# ============================================================================

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Basic health check endpoint.
    Returns service status without requiring authentication.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint with API information.
    """
    response = {
        "name": settings.app_name,
        "version": "1.0.0",
        "health": "/health",
    }

    # Only include docs links in non-production
    if not settings.is_production():
        response["docs"] = "/docs"
        response["redoc"] = "/redoc"

    return response
