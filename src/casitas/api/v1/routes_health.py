"""Health check endpoint for the Casitas upload service."""

from fastapi import APIRouter

from casitas.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Liveness only: no dependency is contacted, so the answer stays fast
    while the media and record stores are slow or down.

    Returns:
        dict: Health status response with status, service, and version fields
    """
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
    }
