"""
Pydantic schemas for Moj Elektro API payloads.

Only the parts of the payload the ingestion loop reads are modelled; unknown
fields are ignored. Interval entries are kept raw on the block and validated
one at a time with `IntervalReading` so a single malformed entry can be
dropped without rejecting the whole day.
"""
from typing import Optional, Any, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field


class IntervalReading(BaseModel):
    """One time-stamped measurement inside an interval block."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: datetime
    value: Decimal
    reading_qualities: Optional[List[Any]] = Field(None, alias="readingQualities")


class IntervalBlock(BaseModel):
    """Interval readings tagged with a single reading type code."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reading_type: Optional[str] = Field(None, alias="readingType")
    interval_readings: Optional[List[Any]] = Field(None, alias="intervalReadings")


class MeterReadingsResponse(BaseModel):
    """Response of GET /meter-readings."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    usage_point: Optional[str] = Field(None, alias="usagePoint")
    interval_blocks: Optional[List[IntervalBlock]] = Field(None, alias="intervalBlocks")


class APIErrorPayload(BaseModel):
    """Error body returned by the API (`Napaka`)."""
    koda: Any
    opis: str
