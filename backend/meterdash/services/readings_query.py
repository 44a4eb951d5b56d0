"""
Read-side queries for the dashboard.

`query_readings` filters raw readings in the store and routes them through
the aggregation engine. Store or aggregation failures never propagate: they
are logged and reported on the returned `QueryResult`, leaving it to the
caller to render an empty chart or an error response.

The `fetch_*` functions take the `Database` handle and open their own
session inside the same guard, so a store that cannot be reached at all
degrades like a failing query. A malformed filter is logged by
`parse_reading_filter` and yields no filter, which callers render as an
empty result.
"""
import time
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from meterdash.core.database import Database
from meterdash.core.logging import get_logger
from meterdash.core.metrics import readings_query_duration_seconds, readings_query_failures_total
from meterdash.models.database.meter_readings import MeterReading
from meterdash.models.database.metering_points import MeteringPoint
from meterdash.models.schemas.readings import DEFAULT_READING_TYPE, ReadingFilter
from meterdash.services.aggregation import AggregatedPoint, aggregate

logger = get_logger(__name__)


@dataclass
class QueryResult:
    points: List[AggregatedPoint] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Return the zone used for bucketing, or None to keep stored timestamps as-is."""
    if not name:
        return None
    return ZoneInfo(name)


def _to_point(row: Any) -> AggregatedPoint:
    timestamp = row.timestamp
    # Some backends (SQLite) hand back naive datetimes; the store holds UTC
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return AggregatedPoint(
        timestamp=timestamp,
        value=row.value,
        metering_point_id=row.metering_point_id,
        reading_type_code=row.reading_type_code,
    )


async def query_readings(
    session: AsyncSession,
    filters: ReadingFilter,
    tz: Optional[tzinfo] = None,
) -> QueryResult:
    """
    Fetch readings matching the filters and aggregate them.

    Args:
        session: Database session
        filters: Date range, metering point, reading type and aggregation
        tz: Optional zone for calendar bucketing

    Returns:
        Aggregated points, or an empty result carrying the error message
    """
    start = time.time()

    stmt = (
        select(
            MeterReading.timestamp,
            MeterReading.value,
            MeterReading.metering_point_id,
            MeterReading.reading_type_code,
        )
        .where(MeterReading.timestamp >= filters.date_from)
        .where(MeterReading.timestamp <= filters.date_to)
        .order_by(MeterReading.timestamp.asc())
    )
    if filters.metering_point_filter:
        stmt = stmt.where(MeterReading.metering_point_id == filters.metering_point_filter)
    if filters.reading_type:
        stmt = stmt.where(MeterReading.reading_type_code == filters.reading_type)

    try:
        result = await session.execute(stmt)
        readings = [_to_point(row) for row in result.all()]
        points = aggregate(readings, filters.aggregation, tz=tz)
    except Exception as e:
        readings_query_failures_total.inc()
        logger.error(
            f"Error fetching meter readings: {e}",
            extra={"query": filters.model_dump(mode="json")},
        )
        try:
            await session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning(f"Rollback after failed readings query also failed: {rollback_error}")
        return QueryResult(error=str(e))

    readings_query_duration_seconds.labels(aggregation=filters.aggregation.value).observe(time.time() - start)
    logger.debug(f"Returned {len(points)} points from {len(readings)} readings")
    return QueryResult(points=points)


async def list_metering_points(session: AsyncSession) -> List[MeteringPoint]:
    try:
        result = await session.execute(select(MeteringPoint).order_by(MeteringPoint.gsrn))
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Error fetching metering points: {e}")
        return []


async def list_reading_types(session: AsyncSession) -> List[str]:
    """Distinct reading type codes present in the store."""
    try:
        result = await session.execute(
            select(MeterReading.reading_type_code).distinct().order_by(MeterReading.reading_type_code)
        )
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Error fetching reading types: {e}")
        return [DEFAULT_READING_TYPE]


async def rename_metering_point(
    session: AsyncSession,
    gsrn: str,
    name: Optional[str],
) -> Optional[MeteringPoint]:
    """Set the display name of a metering point; None if it does not exist."""
    metering_point = await session.get(MeteringPoint, gsrn)
    if metering_point is None:
        return None
    metering_point.name = name
    await session.flush()
    await session.refresh(metering_point)
    logger.info(f"Renamed metering point {gsrn} to {name!r}")
    return metering_point


def parse_reading_filter(params: Dict[str, Any]) -> Optional[ReadingFilter]:
    """
    Build a filter from raw query parameters keyed by their wire names.

    Empty or missing values fall back to the defaults. Returns None and logs
    the validation errors when a bound is not a date or the aggregation is
    unknown.
    """
    values = {key: value for key, value in params.items() if value not in (None, "")}
    try:
        return ReadingFilter(**values)
    except ValidationError as e:
        readings_query_failures_total.inc()
        logger.error(
            f"Malformed readings filter: {e.error_count()} invalid field(s)",
            extra={"query": {"params": values, "errors": e.errors(include_url=False)}},
        )
        return None


async def fetch_readings(
    database: Database,
    filters: ReadingFilter,
    tz: Optional[tzinfo] = None,
) -> QueryResult:
    """Run `query_readings` in a fresh session; an unreachable store is reported like a failed query."""
    try:
        async with database.session() as session:
            return await query_readings(session, filters, tz=tz)
    except SQLAlchemyError as e:
        readings_query_failures_total.inc()
        logger.error(f"Error opening session for meter readings: {e}")
        return QueryResult(error=str(e))


async def fetch_metering_points(database: Database) -> List[MeteringPoint]:
    try:
        async with database.session() as session:
            return await list_metering_points(session)
    except SQLAlchemyError as e:
        logger.error(f"Error opening session for metering points: {e}")
        return []


async def fetch_reading_types(database: Database) -> List[str]:
    try:
        async with database.session() as session:
            return await list_reading_types(session)
    except SQLAlchemyError as e:
        logger.error(f"Error opening session for reading types: {e}")
        return [DEFAULT_READING_TYPE]
