# Schemas package
from meterdash.models.schemas.mojelektro import (
    IntervalReading,
    IntervalBlock,
    MeterReadingsResponse,
    APIErrorPayload,
)
from meterdash.models.schemas.readings import (
    ReadingFilter,
    ReadingPointResponse,
    MeteringPointResponse,
    MeteringPointUpdate,
    DashboardFilters,
    DashboardResponse,
)

__all__ = [
    "IntervalReading",
    "IntervalBlock",
    "MeterReadingsResponse",
    "APIErrorPayload",
    "ReadingFilter",
    "ReadingPointResponse",
    "MeteringPointResponse",
    "MeteringPointUpdate",
    "DashboardFilters",
    "DashboardResponse",
]
