"""
Health Check Endpoints

Liveness only says the process is up. Health and readiness both ask the
warehouse database for a round trip; readiness answers 503 while it fails
so load balancers stop routing BI traffic to the instance.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from src.config import get_settings
from src.database.connection import check_database_health

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    version: str
    environment: str
    timestamp: datetime
    database: Dict[str, Any]


class ReadinessResponse(BaseModel):
    status: Literal["ready", "not_ready"]
    reason: Optional[str] = None


def _database_ok(check: Dict[str, Any]) -> bool:
    return check.get("status") == "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Application version plus database round-trip latency"""
    database = await check_database_health()
    return HealthResponse(
        status="healthy" if _database_ok(database) else "unhealthy",
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        database=database,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready", response_model=ReadinessResponse, response_model_exclude_none=True)
async def readiness_check(response: Response) -> ReadinessResponse:
    if not _database_ok(await check_database_health()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready", reason="database_unavailable")
    return ReadinessResponse(status="ready")
