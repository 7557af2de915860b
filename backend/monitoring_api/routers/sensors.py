"""
Sensors API Router
==================

Where the ESP32 boards send their readings, and where the app reads them.

HOW A BOARD TALKS TO US:
-----------------------
Every few minutes a board wakes up, measures soil humidity and POSTs:

    POST /api/sensors
    {"device_id": "ESP32_001", "umidade_solo": 62, "timestamp": 1717171717000}

If we have never heard of ESP32_001 it gets registered automatically.

ALL ENDPOINTS:
-------------
POST   /api/sensors                 - Store a reading (201)
GET    /api/sensors                 - List readings (filters + pagination)
GET    /api/sensors/count           - Number of readings matching the filters
GET    /api/sensors/stats/summary   - Averages/min/max, optionally per device
GET    /api/sensors/{id}            - One reading
PATCH  /api/sensors/{id}            - Correct a reading
DELETE /api/sensors/{id}            - Remove a reading
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from monitoring_api.models import (
    ReadingListResponse,
    ReadingStats,
    SensorReadingDetail,
    SensorReadingRequest,
    SensorReadingResponse,
    SortOrder,
)
from monitoring_api.routers.dependencies import get_sensor_ingestion
from monitoring_api.utils import parse_iso_datetime

router = APIRouter(prefix="/api/sensors", tags=["sensors"])


@router.post("", response_model=SensorReadingResponse, status_code=201)
def receive_reading(reading: SensorReadingRequest, ingestion=Depends(get_sensor_ingestion)):
    """
    Receive one reading from an ESP32 board.

    `timestamp` is the board's own clock (epoch ms); we also record when the
    reading arrived (`created_at`).
    """
    return ingestion.ingest(reading)


@router.get("", response_model=ReadingListResponse)
def list_readings(
    device_id: Optional[str] = Query(None, description="Only this device"),
    start_date: Optional[str] = Query(None, description="ISO 8601, created_at >= start_date"),
    end_date: Optional[str] = Query(None, description="ISO 8601, created_at <= end_date (a plain date covers the whole day)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    order: SortOrder = Query(SortOrder.DESC),
    ingestion=Depends(get_sensor_ingestion),
):
    """
    List readings for the mobile app.

    Examples:
    - /api/sensors?device_id=ESP32_001
    - /api/sensors?start_date=2024-05-01&end_date=2024-05-31&order=asc
    - /api/sensors?limit=20&offset=40
    """
    return ingestion.list_readings(
        device_id=device_id,
        start_date=parse_iso_datetime(start_date),
        end_date=parse_iso_datetime(end_date, end_of_day=True),
        limit=limit,
        offset=offset,
        order=order,
    )


# Must come before the /{reading_id} routes
@router.get("/count")
def count_readings(
    device_id: Optional[str] = Query(None, description="Only this device"),
    start_date: Optional[str] = Query(None, description="ISO 8601, created_at >= start_date"),
    end_date: Optional[str] = Query(None, description="ISO 8601, created_at <= end_date"),
    ingestion=Depends(get_sensor_ingestion),
):
    """How many readings match these filters (same filters as the list)."""
    total = ingestion.count_readings(
        device_id=device_id,
        start_date=parse_iso_datetime(start_date),
        end_date=parse_iso_datetime(end_date, end_of_day=True),
    )
    return {"total": total}


@router.get("/stats/summary", response_model=ReadingStats)
def get_summary(
    device_id: Optional[str] = Query(None),
    ingestion=Depends(get_sensor_ingestion),
):
    """Aggregate statistics over all readings, or one device's readings."""
    return ingestion.summary(device_id)


@router.get("/{reading_id}", response_model=SensorReadingDetail)
def get_reading(reading_id: int, ingestion=Depends(get_sensor_ingestion)):
    return ingestion.get_reading(reading_id)


@router.patch("/{reading_id}", response_model=SensorReadingResponse)
def update_reading(
    reading_id: int,
    reading: SensorReadingRequest,
    ingestion=Depends(get_sensor_ingestion),
):
    """
    Correct a stored reading.

    Send the full reading, same body as POST. The device must exist.
    """
    return ingestion.update_reading(reading_id, reading)


@router.delete("/{reading_id}")
def delete_reading(reading_id: int, ingestion=Depends(get_sensor_ingestion)):
    """Remove one reading. There's no undo!"""
    ingestion.delete_reading(reading_id)
    return {"status": "deleted", "reading_id": reading_id}
