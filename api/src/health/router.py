"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports the backing services.

    Cassandra is required to serve requests; Redis only backs the grant
    cache and the auto-chain only affects next-lesson requests.
    """
    settings = get_settings()
    state = request.app.state

    cassandra = getattr(state, "cassandra_session", None) is not None
    auto_chain = getattr(state, "auto_chain", None)

    return {
        "status": "ready" if cassandra else "degraded",
        "environment": settings.environment,
        "debug": settings.debug,
        "cassandra": cassandra,
        "redis": getattr(state, "redis", None) is not None,
        "auto_chain": bool(auto_chain and auto_chain.is_running),
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
