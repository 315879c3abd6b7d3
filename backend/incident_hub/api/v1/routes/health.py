"""Health check endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.config import settings
from incident_hub.db.session import get_db

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "healthy"}


@router.get("/db")
async def database_health(response: Response, db: AsyncSession = Depends(get_db)):
    """Check database connection health.

    Returns HTTP 503 if database is unavailable.
    """
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        response.status_code = 503
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


@router.get("/ready")
async def readiness_check(response: Response, db: AsyncSession = Depends(get_db)):
    """Readiness check for all critical services.

    Redis is only checked when it is configured. Returns HTTP 503 if any
    checked service is unavailable.
    """
    checks = {"database": False}
    errors = {}

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        errors["database"] = str(e)

    # Check Redis
    if settings.redis_url:
        checks["redis"] = False
        try:
            import redis.asyncio as redis
            r = redis.from_url(settings.redis_url)
            await r.ping()
            await r.close()
            checks["redis"] = True
        except Exception as e:
            errors["redis"] = str(e)

    all_healthy = all(checks.values())

    # Return 503 if not ready
    if not all_healthy:
        response.status_code = 503

    result = {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
    }

    if errors:
        result["errors"] = errors

    return result
