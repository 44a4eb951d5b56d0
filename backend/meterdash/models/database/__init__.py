# Database models package
from meterdash.models.database.users import User
from meterdash.models.database.metering_points import MeteringPoint
from meterdash.models.database.meter_readings import MeterReading

__all__ = [
    "User",
    "MeteringPoint",
    "MeterReading",
]
