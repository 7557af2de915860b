"""
Routers Package
===============

Routers are like the reception desk - they direct incoming requests
to the right place.
"""

from .devices import router as devices_router
from .pump import router as pump_router
from .sensors import router as sensors_router

__all__ = [
    "devices_router",
    "pump_router",
    "sensors_router",
]
