"""
Sensor Models
=============
Pydantic models for soil readings sent by the ESP32 boards.

Field names follow the firmware payload (Portuguese):
    umidade_solo  soil humidity in %, whole number 0-100
    temperatura   temperature in °C (deprecated, optional)
    timestamp     board clock in epoch milliseconds

Example Request:
    POST /api/sensors
    {
        "device_id": "ESP32_001",
        "umidade_solo": 62,
        "timestamp": 1717171717000
    }
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from monitoring_api.models.common import Pagination
from monitoring_api.models.device import DeviceResponse


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SensorReadingRequest(BaseModel):
    """One reading from one board. Unknown devices are registered on the fly."""
    device_id: str = Field(..., min_length=1, max_length=50, examples=["ESP32_001"])
    umidade_solo: int = Field(..., ge=0, le=100, description="Soil humidity %")
    timestamp: int = Field(..., ge=0, description="Board clock, epoch milliseconds")
    temperatura: Optional[float] = Field(
        None, ge=-50, le=100, description="Temperature °C (deprecated)"
    )


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class SensorReadingResponse(BaseModel):
    id: int
    device_id: str
    umidade_solo: int
    temperatura: Optional[float] = None
    timestamp: int
    created_at: datetime = Field(..., description="Server receipt time")


class SensorReadingDetail(SensorReadingResponse):
    """A reading joined with the name and location of its device."""
    device_name: Optional[str] = None
    device_location: Optional[str] = None


class ReadingListResponse(BaseModel):
    data: list[SensorReadingDetail]
    pagination: Pagination


class ReadingStats(BaseModel):
    """Aggregates over a set of readings. Averages are None when there are none."""
    total_readings: int = 0
    avg_umidade: Optional[float] = None
    min_umidade: Optional[int] = None
    max_umidade: Optional[int] = None
    avg_temperatura: Optional[float] = None
    min_temperatura: Optional[float] = None
    max_temperatura: Optional[float] = None
    first_reading: Optional[datetime] = None
    last_reading: Optional[datetime] = None


class ReadingPoint(BaseModel):
    umidade_solo: int
    temperatura: Optional[float] = None
    created_at: datetime


class DeviceStatsResponse(BaseModel):
    """Reading statistics for one device, plus every reading from the last 24 hours."""
    device: DeviceResponse
    stats: ReadingStats
    last_24h: list[ReadingPoint]
