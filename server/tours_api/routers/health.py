"""Health, readiness and service information endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .. import __version__
from ..core.config import settings
from ..core.database import check_db, get_db
from ..schemas.health import HealthResponse, HealthStatus, ReadinessResponse

logger = logging.getLogger(__name__)

SERVICE_NAME = "tours-api"
SERVICE_VERSION = __version__

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status and timestamp.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        service=SERVICE_NAME,
        timestamp=datetime.utcnow(),
        version=SERVICE_VERSION,
        environment=settings.environment,
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status,
            "timestamp": response_data.timestamp.isoformat()
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Readiness check; fails with 503 when the database does not answer."""
    try:
        database_ok = await check_db(db)
    except Exception as e:
        logger.warning("Readiness check failed", extra={"error": str(e)})
        database_ok = False

    response_data = ReadinessResponse(
        status=HealthStatus.READY if database_ok else HealthStatus.UNAVAILABLE,
        service=SERVICE_NAME,
        checks={"database": "ok" if database_ok else "unavailable"},
    )
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content=response_data.model_dump(mode="json")
    )


@router.get("/info")
async def service_info() -> dict:
    """Service information endpoint."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": "REST API for tours with query features and aggregation reports",
        "environment": settings.environment,
        "debug": settings.debug,
        "endpoints": {
            "health": "/health",
            "readiness": "/ready",
            "info": "/info",
            "metrics": "/metrics",
            "tours": f"{settings.api_prefix}/tours",
            "docs": "/docs" if settings.debug else None,
        },
    }
