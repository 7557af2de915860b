"""
Device Models
=============
Pydantic models for the device registry.

A device is one ESP32 board, identified by the `device_id` it sends with
every reading (e.g. "ESP32_001"). Devices are created explicitly through
POST /api/devices, or automatically the first time a board submits a
reading.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateDeviceRequest(BaseModel):
    """
    Request body for registering a device.

    Example Request:
        POST /api/devices
        {
            "device_id": "ESP32_001",
            "name": "ESP32 Living Room",
            "location": "Living room - 1st floor",
            "description": "Soil humidity for the ferns"
        }
    """
    device_id: str = Field(
        ...,
        description="Stable external ID the board reports with",
        min_length=1,
        max_length=50,
        examples=["ESP32_001"]
    )
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)


class UpdateDeviceRequest(BaseModel):
    """
    Request body for updating a device.

    All fields are optional - only provided fields will be updated.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class DeviceResponse(BaseModel):
    id: int = Field(..., description="Internal row ID")
    device_id: str = Field(..., description="External device ID")
    name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class DeviceSummaryResponse(DeviceResponse):
    """A device plus a roll-up of its readings."""
    total_readings: int = Field(0, description="Number of stored readings")
    first_reading: Optional[datetime] = Field(None, description="created_at of the oldest reading")
    last_reading: Optional[datetime] = Field(None, description="created_at of the newest reading")


class DeviceListResponse(BaseModel):
    devices: list[DeviceSummaryResponse]
    total: int
