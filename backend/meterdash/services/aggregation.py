"""
Time-bucketed aggregation of interval meter readings.

Readings are grouped by (bucket start, metering point, reading type) and their
values summed with `Decimal` arithmetic. Buckets are calendar aligned using
the timestamp's own timezone fields, or those of `tz` when one is given.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from meterdash.core.logging import get_logger

logger = get_logger(__name__)


class Granularity(str, enum.Enum):
    """Aggregation period selectable by the dashboard."""
    QUARTER_HOUR = "15min"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class AggregatedPoint:
    """Summed value for one bucket of one metering point and reading type."""

    timestamp: datetime
    value: Decimal
    metering_point_id: str
    reading_type_code: str

    @classmethod
    def from_reading(cls, reading: Any) -> "AggregatedPoint":
        return cls(
            timestamp=reading.timestamp,
            value=_to_decimal(reading.value),
            metering_point_id=reading.metering_point_id,
            reading_type_code=reading.reading_type_code,
        )


GroupKey = Tuple[datetime, str, str]


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps the shortest repr of floats instead of their binary expansion
    return Decimal(str(value))


def _start_of_day(ts: datetime) -> datetime:
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def bucket_start(ts: datetime, granularity: Granularity) -> datetime:
    """
    Return the start of the bucket `ts` falls into.

    Weeks start on Sunday: the bucket is the day obtained by subtracting the
    day of week (Sunday = 0) from the date, so a Saturday reading lands six
    days back and a Sunday reading on itself. Month and year boundaries roll
    over through ordinary date subtraction.
    """
    if granularity == Granularity.QUARTER_HOUR:
        return ts
    if granularity == Granularity.HOUR:
        return ts.replace(minute=0, second=0, microsecond=0)
    if granularity == Granularity.DAY:
        return _start_of_day(ts)
    if granularity == Granularity.WEEK:
        day_of_week = ts.isoweekday() % 7
        return _start_of_day(ts) - timedelta(days=day_of_week)
    if granularity == Granularity.MONTH:
        return _start_of_day(ts).replace(day=1)
    raise ValueError(f"Unsupported granularity: {granularity}")


def aggregate(
    readings: Iterable[Any],
    granularity: Granularity | str,
    tz: Optional[tzinfo] = None,
) -> List[AggregatedPoint]:
    """
    Aggregate readings into calendar-aligned buckets.

    Args:
        readings: Objects exposing `timestamp`, `value`, `metering_point_id`
            and `reading_type_code` (ORM rows or plain records)
        granularity: One of 15min, hour, day, week, month
        tz: Optional zone to convert timestamps into before bucketing

    Returns:
        One point per (bucket, metering point, reading type). For 15min the
        readings are passed through one-to-one in input order; otherwise
        groups appear in the order they were first seen.
    """
    granularity = Granularity(granularity)

    if granularity == Granularity.QUARTER_HOUR:
        return [AggregatedPoint.from_reading(reading) for reading in readings]

    totals: Dict[GroupKey, Decimal] = {}
    for reading in readings:
        ts = reading.timestamp
        if tz is not None:
            ts = ts.astimezone(tz)
        key = (bucket_start(ts, granularity), reading.metering_point_id, reading.reading_type_code)
        totals[key] = totals.get(key, Decimal(0)) + _to_decimal(reading.value)

    logger.debug(f"Aggregated readings into {len(totals)} {granularity.value} buckets")

    return [
        AggregatedPoint(
            timestamp=bucket,
            value=value,
            metering_point_id=metering_point_id,
            reading_type_code=reading_type_code,
        )
        for (bucket, metering_point_id, reading_type_code), value in totals.items()
    ]
