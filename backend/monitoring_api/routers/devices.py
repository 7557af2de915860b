"""
Devices API Router
==================

Manage the catalog of ESP32 boards.

ALL ENDPOINTS:
-------------
GET    /api/devices                    - List devices with reading counts
POST   /api/devices                    - Register a device (409 if it exists)
GET    /api/devices/{device_id}        - One device with its reading roll-up
PATCH  /api/devices/{device_id}        - Change name/location/description
DELETE /api/devices/{device_id}        - Remove the device and all its data
GET    /api/devices/{device_id}/stats  - Reading statistics + last 24 hours
"""

from fastapi import APIRouter, Depends

from monitoring_api.models import (
    CreateDeviceRequest,
    DeviceListResponse,
    DeviceResponse,
    DeviceStatsResponse,
    DeviceSummaryResponse,
    UpdateDeviceRequest,
)
from monitoring_api.routers.dependencies import get_device_registry, get_sensor_ingestion

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.get("", response_model=DeviceListResponse)
def list_devices(registry=Depends(get_device_registry)):
    """All devices, newest first, each with its reading count and last reading time."""
    devices = registry.list_devices()
    return DeviceListResponse(devices=devices, total=len(devices))


@router.post("", response_model=DeviceResponse, status_code=201)
def create_device(request: CreateDeviceRequest, registry=Depends(get_device_registry)):
    """
    Register a new device.

    Send us:
    - device_id: The ID the board reports with (like "ESP32_001")
    - name, location, description: Optional, for humans
    """
    return registry.create_device(request)


@router.get("/{device_id}", response_model=DeviceSummaryResponse)
def get_device(device_id: str, registry=Depends(get_device_registry)):
    return registry.get_device(device_id)


@router.patch("/{device_id}", response_model=DeviceResponse)
def update_device(
    device_id: str,
    request: UpdateDeviceRequest,
    registry=Depends(get_device_registry),
):
    """Update a device. Only the fields you send are changed."""
    return registry.update_device(device_id, request)


@router.delete("/{device_id}")
def delete_device(device_id: str, registry=Depends(get_device_registry)):
    """
    Delete a device.

    Its readings and pump history go with it.
    There's no undo! Make sure you want to do this.
    """
    result = registry.delete_device(device_id)
    return {"status": "deleted", **result}


@router.get("/{device_id}/stats", response_model=DeviceStatsResponse)
def get_device_stats(device_id: str, ingestion=Depends(get_sensor_ingestion)):
    """Reading statistics for one device, plus its readings from the last 24 hours."""
    return ingestion.device_stats(device_id)
