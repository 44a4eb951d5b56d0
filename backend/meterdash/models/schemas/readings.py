"""
Pydantic schemas for the readings read API.
"""
from typing import Optional, List
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from meterdash.services.aggregation import AggregatedPoint, Granularity

DEFAULT_METERING_POINT = "all"
DEFAULT_READING_TYPE = "consumption"
DEFAULT_WINDOW = timedelta(days=7)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _week_ago() -> datetime:
    return _now() - DEFAULT_WINDOW


class ReadingFilter(BaseModel):
    """
    Dashboard filter state.

    Omitted bounds default to the last seven days; a metering point of
    "all" (or None) disables the metering point filter.
    """
    model_config = ConfigDict(populate_by_name=True)

    date_from: datetime = Field(default_factory=_week_ago, alias="from")
    date_to: datetime = Field(default_factory=_now, alias="to")
    metering_point: Optional[str] = Field(DEFAULT_METERING_POINT, alias="meteringPoint")
    reading_type: Optional[str] = Field(None, alias="readingType")
    aggregation: Granularity = Field(Granularity.DAY)

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        """Store timestamps are UTC; naive bounds are taken as UTC too."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def metering_point_filter(self) -> Optional[str]:
        if not self.metering_point or self.metering_point == DEFAULT_METERING_POINT:
            return None
        return self.metering_point


class ReadingPointResponse(BaseModel):
    """One (possibly aggregated) reading as returned to the dashboard."""
    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    value: float
    metering_point_id: str = Field(..., alias="meteringPointId")
    reading_type_code: str = Field(..., alias="readingTypeCode")

    @field_serializer("timestamp")
    def serialize_timestamp(self, ts: datetime) -> str:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.isoformat()

    @classmethod
    def from_point(cls, point: AggregatedPoint) -> "ReadingPointResponse":
        # Decimal is kept through aggregation and only narrowed here for JSON
        return cls(
            timestamp=point.timestamp,
            value=float(point.value),
            metering_point_id=point.metering_point_id,
            reading_type_code=point.reading_type_code,
        )


class MeteringPointResponse(BaseModel):
    """Metering point identity and display name."""
    model_config = ConfigDict(from_attributes=True)

    gsrn: str
    name: Optional[str] = None


class MeteringPointUpdate(BaseModel):
    """Rename request for a metering point."""
    name: Optional[str] = Field(None, max_length=255)


class DashboardFilters(BaseModel):
    """Filter values the dashboard starts with."""
    model_config = ConfigDict(populate_by_name=True)

    date_from: datetime = Field(..., alias="from")
    date_to: datetime = Field(..., alias="to")
    metering_point: str = Field(DEFAULT_METERING_POINT, alias="meteringPoint")
    reading_type: str = Field(DEFAULT_READING_TYPE, alias="readingType")
    aggregation: Granularity = Granularity.DAY


class DashboardResponse(BaseModel):
    """Initial payload for the dashboard page."""
    model_config = ConfigDict(populate_by_name=True)

    metering_points: List[MeteringPointResponse] = Field(..., alias="meteringPoints")
    reading_types: List[str] = Field(..., alias="readingTypes")
    readings: List[ReadingPointResponse]
    filters: DashboardFilters
