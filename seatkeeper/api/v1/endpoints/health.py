"""
Health check endpoints
"""

from typing import Any
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatkeeper.config import settings
from seatkeeper.core.database import check_db
from seatkeeper.core.dependencies import get_session_factory

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/live")
async def liveness() -> Any:
    """
    Kubernetes liveness probe
    """
    return {"status": "alive", "service": "seatkeeper"}


@router.get("/ready")
async def readiness(
    request: Request,
    response: Response,
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> Any:
    """
    Kubernetes readiness probe - checks the stores the service depends on
    """
    checks = {"database": await check_db(session_factory)}

    redis_client = getattr(request.app.state, "redis_client", None)
    if redis_client is not None:
        try:
            checks["redis"] = bool(await redis_client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = False

    all_healthy = all(checks.values())
    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if all_healthy else "not ready",
        "checks": checks,
        "backend": settings.AVAILABILITY_BACKEND,
        "version": settings.APP_VERSION
    }
