"""Health check endpoints."""

from fastapi import APIRouter

from officemate import __version__
from officemate.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "officemate"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration info."""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "officemate",
        "version": __version__,
        "config": settings.get_safe_dict(),
    }
