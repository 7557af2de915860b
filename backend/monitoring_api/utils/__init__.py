"""
Utility modules for the monitoring backend.
"""

from monitoring_api.utils.locks import KeyedLock
from monitoring_api.utils.validation import (
    parse_iso_datetime,
    require_device_id,
    require_pagination,
    validate_device_id,
    validate_pagination,
    validate_soil_moisture,
    validate_temperature,
    window_start,
)

__all__ = [
    "KeyedLock",
    "parse_iso_datetime",
    "require_device_id",
    "require_pagination",
    "validate_device_id",
    "validate_pagination",
    "validate_soil_moisture",
    "validate_temperature",
    "window_start",
]
