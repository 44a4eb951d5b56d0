# API v1 package
from meterdash.api.v1.readings import router as readings_router
from meterdash.api.v1.metering_points import router as metering_points_router

__all__ = [
    "readings_router",
    "metering_points_router",
]
