"""
Meter reading database model for 15-minute interval data.
"""
from sqlalchemy import Column, Integer, String, JSON, Numeric, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from meterdash.core.database import Base


class MeterReading(Base):
    """Single interval reading. Created once by ingestion, never updated."""

    __tablename__ = "meter_readings"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    value = Column(Numeric(precision=18, scale=6), nullable=False)
    reading_type_code = Column(String(100), nullable=False, index=True)
    quality = Column(JSON, nullable=True)  # Reading quality flags as returned by the API
    metering_point_id = Column(
        String(64), ForeignKey("metering_points.gsrn", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        # Ingestion relies on this for skip-on-duplicate inserts
        UniqueConstraint(
            "metering_point_id", "reading_type_code", "timestamp",
            name="uq_meter_readings_point_type_timestamp",
        ),
        Index("idx_meter_readings_timestamp", "timestamp"),
    )
