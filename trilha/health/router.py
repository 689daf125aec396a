"""Health check endpoints."""

from fastapi import APIRouter, Request

from trilha.config import get_settings
from trilha.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports which backing services are wired."""
    settings = get_settings()
    state = request.app.state
    cassandra_ready = AsyncCassandraConnection.is_connected()
    return {
        "status": "ready" if cassandra_ready else "degraded",
        "environment": settings.environment,
        "cassandra": cassandra_ready,
        "push_feed": getattr(state, "enrollment_feed", None) is not None,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
