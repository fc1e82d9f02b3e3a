"""Health check endpoints."""

from dataclasses import fields

from fastapi import APIRouter, Request, Response, status

from learnhub.config.settings import Settings
from learnhub.services import Services


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """The process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, object]:
    """Every service is wired on the storage backend (503 until then)."""
    settings: Settings = request.app.state.settings
    missing = [
        f.name
        for f in fields(Services)
        if getattr(request.app.state, f.name, None) is None
    ]
    if missing:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "starting" if missing else "ready",
        "missing_services": missing,
        "environment": settings.environment,
        "database_backend": settings.database_backend,
        "debug": settings.debug,
    }


@router.get("")
async def health(request: Request) -> dict[str, str]:
    settings: Settings = request.app.state.settings
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
