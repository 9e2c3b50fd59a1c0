"""
Health check and status endpoints.
"""
from fastapi import APIRouter
from skillgate.core.datetime_utils import utc_now
from skillgate.core.config import settings

router = APIRouter()


@router.get("/health")
def health_check():
    """
    Health check endpoint.
    Returns basic health status of the API.
    """
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }
