"""
Health Endpoints

/health reports each dependency. /health/live and /health/ready are the
probes a load balancer or orchestrator polls.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel

from carwash.config import get_settings
from carwash.database.connection import check_database_health
from carwash.serving.cache import get_redis, redis_available

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # healthy, degraded or unhealthy
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _redis_status() -> Dict[str, Any]:
    if not redis_available():
        return {"status": "disabled"}
    try:
        await get_redis().ping()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    The database is required; losing it makes the service unhealthy.
    Redis only backs the analytics cache, so losing it degrades the service.
    """
    checks = {
        "database": await check_database_health(),
        "redis": await _redis_status(),
    }

    if checks["database"]["status"] != "healthy":
        status = "unhealthy"
    elif checks["redis"]["status"] == "unhealthy":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """503 until the database answers."""
    if (await check_database_health())["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
