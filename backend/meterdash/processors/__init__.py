# Processors package
from meterdash.processors.mojelektro_client import MojElektroClient, MojElektroAPIError

__all__ = [
    "MojElektroClient",
    "MojElektroAPIError",
]
