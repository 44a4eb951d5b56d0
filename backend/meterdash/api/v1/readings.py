"""
Meter readings read API endpoints.
"""
from typing import Optional, List
from datetime import tzinfo

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from meterdash.core.config import settings
from meterdash.core.database import Database, get_database
from meterdash.core.logging import get_logger
from meterdash.models.schemas.readings import (
    DEFAULT_METERING_POINT,
    DEFAULT_READING_TYPE,
    DashboardFilters,
    DashboardResponse,
    MeteringPointResponse,
    ReadingFilter,
    ReadingPointResponse,
)
from meterdash.services.aggregation import Granularity
from meterdash.services.readings_query import (
    fetch_metering_points,
    fetch_reading_types,
    fetch_readings,
    parse_reading_filter,
    resolve_timezone,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Readings"])


def get_aggregation_timezone() -> Optional[tzinfo]:
    return resolve_timezone(settings.AGGREGATION_TIMEZONE)


@router.get("/readings", response_model=List[ReadingPointResponse])
async def get_readings(
    date_from: Optional[str] = Query(None, alias="from", description="Range start (ISO instant)"),
    date_to: Optional[str] = Query(None, alias="to", description="Range end (ISO instant)"),
    metering_point: Optional[str] = Query(None, alias="meteringPoint", description="GSRN or 'all'"),
    reading_type: Optional[str] = Query(None, alias="readingType"),
    aggregation: Optional[str] = Query(None, description="15min, hour, day, week or month"),
    database: Database = Depends(get_database),
    tz: Optional[tzinfo] = Depends(get_aggregation_timezone),
):
    """
    Readings for the date range, aggregated into the requested period.

    Omitted bounds default to the last seven days. A malformed filter is
    logged and answered with an empty list.
    """
    filters = parse_reading_filter({
        "from": date_from,
        "to": date_to,
        "meteringPoint": metering_point or DEFAULT_METERING_POINT,
        "readingType": reading_type,
        "aggregation": aggregation,
    })
    if filters is None:
        return []

    result = await fetch_readings(database, filters, tz=tz)
    if not result.ok:
        return JSONResponse(status_code=500, content={"error": "Failed to fetch readings"})

    return [ReadingPointResponse.from_point(point) for point in result.points]


@router.get("/reading-types", response_model=List[str])
async def get_reading_types(database: Database = Depends(get_database)):
    """Distinct reading type codes present in the store."""
    return await fetch_reading_types(database)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    database: Database = Depends(get_database),
    tz: Optional[tzinfo] = Depends(get_aggregation_timezone),
):
    """
    Initial dashboard payload: metering points, reading types and the
    last seven days of daily readings for the first known reading type.
    """
    metering_points = await fetch_metering_points(database)
    reading_types = await fetch_reading_types(database)

    filters = ReadingFilter(
        readingType=reading_types[0] if reading_types else DEFAULT_READING_TYPE,
        aggregation=Granularity.DAY,
    )
    result = await fetch_readings(database, filters, tz=tz)

    return DashboardResponse(
        metering_points=[MeteringPointResponse.model_validate(point) for point in metering_points],
        reading_types=reading_types,
        readings=[ReadingPointResponse.from_point(point) for point in result.points],
        filters=DashboardFilters(
            date_from=filters.date_from,
            date_to=filters.date_to,
            metering_point=DEFAULT_METERING_POINT,
            reading_type=filters.reading_type,
            aggregation=filters.aggregation,
        ),
    )
