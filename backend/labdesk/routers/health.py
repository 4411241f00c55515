"""Health check routes for the labdesk backend."""

from fastapi import APIRouter

from ..config import settings
from ..services.data_access import RestDataAccess

SERVICE_NAME = "Labdesk Backend"

router = APIRouter()


async def data_service_reachable() -> bool:
    if not settings.data_service_configured():
        return False
    async with RestDataAccess(
        settings.supabase_url,
        settings.supabase_key,
        timeout_s=settings.data_timeout_s,
    ) as data:
        return await data.ping()


@router.get("/health")
async def health_check():
    """Basic health endpoint with service metadata."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": settings.app_version,
    }


@router.get("/health/live")
async def liveness_check():
    """Simple liveness probe."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check():
    """
    Readiness probe:
    - hosted database URL and key configured
    - REST endpoint reachable
    """
    configured = settings.data_service_configured()
    reachable = await data_service_reachable() if configured else False
    ready = configured and reachable
    return {
        "status": "ready" if ready else "not_ready",
        "service": SERVICE_NAME,
        "version": settings.app_version,
        "checks": {
            "data_service_configured": configured,
            "data_service_reachable": reachable,
        },
    }
