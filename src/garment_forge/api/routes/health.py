from fastapi import APIRouter, Depends, Response, status

from garment_forge.api.dependencies import get_database
from garment_forge.api.schemas import HealthResponse, ReadinessResponse
from garment_forge.core.ports.database import DesignDatabase

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness check: is the process alive?"""
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    db: DesignDatabase = Depends(get_database),
) -> ReadinessResponse:
    """Readiness check: verifies DB connectivity."""
    if await db.ping():
        return ReadinessResponse(status="ok", database="up")
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status="degraded", database="down")
