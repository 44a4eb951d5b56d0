"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends
from typing import Dict, Any

from sqlalchemy import func, select

from meterdash.core.database import Database, get_database
from meterdash.core.config import settings
from meterdash.models.database.meter_readings import MeterReading

router = APIRouter()


def _service_info() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Liveness probe; does not touch the database."""
    return _service_info()


@router.get("/health/detailed")
async def detailed_health_check(
    database: Database = Depends(get_database)
) -> Dict[str, Any]:
    """
    Database connectivity plus the newest stored reading, which shows at a
    glance whether ingestion has been keeping up.
    """
    health_status = _service_info()
    health_status["checks"] = {"database": "unknown"}

    try:
        await database.ping()
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        return health_status

    try:
        async with database.session() as session:
            latest = (await session.execute(select(func.max(MeterReading.timestamp)))).scalar()
        health_status["latest_reading"] = latest.isoformat() if latest else None
    except Exception as e:
        health_status["latest_reading"] = f"unavailable: {str(e)}"

    return health_status
