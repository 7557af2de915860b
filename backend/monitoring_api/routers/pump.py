"""
Pump API Router
===============

Turn a device's water pump on/off and look at what it has been doing.

ALL ENDPOINTS:
-------------
GET  /api/pump/{device_id}/status   - What is the pump doing right now?
POST /api/pump/{device_id}/control  - Activate or deactivate it
GET  /api/pump/{device_id}/history  - Every on/off event, newest first
GET  /api/pump/{device_id}/stats    - Totals, run durations, last 24 hours

Errors:
    404 - the device is not registered
    400 - the pump is already in the requested state, or bad input
"""

from fastapi import APIRouter, Depends, Query

from monitoring_api.models import (
    PumpControlRequest,
    PumpHistoryResponse,
    PumpStatsResponse,
    PumpStatusView,
)
from monitoring_api.routers.dependencies import get_pump_tracker

router = APIRouter(prefix="/api/pump", tags=["pump"])


@router.get("/{device_id}/status", response_model=PumpStatusView)
def get_pump_status(device_id: str, tracker=Depends(get_pump_tracker)):
    """
    Get the current pump status.

    A device that never used its pump reports "inactive" with reason
    "system initialized".
    """
    return tracker.get_status(device_id)


@router.post("/{device_id}/control", response_model=PumpStatusView)
def control_pump(
    device_id: str,
    request: PumpControlRequest,
    tracker=Depends(get_pump_tracker),
):
    """
    Activate or deactivate the pump.

    Send us:
    - action: "activate" or "deactivate"
    - reason: Why (optional, defaults to "Pump activated"/"Pump deactivated")
    - triggered_by: "manual" (default), "automatic" or "schedule"

    Deactivating records how many seconds the pump ran.
    """
    return tracker.set_status(
        device_id,
        request.action,
        reason=request.reason,
        triggered_by=request.triggered_by,
    )


@router.get("/{device_id}/history", response_model=PumpHistoryResponse)
def get_pump_history(
    device_id: str,
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    tracker=Depends(get_pump_tracker),
):
    """Get the pump's on/off events, newest first, one page at a time."""
    return tracker.get_history(device_id, limit=limit, offset=offset)


@router.get("/{device_id}/stats", response_model=PumpStatsResponse)
def get_pump_stats(device_id: str, tracker=Depends(get_pump_tracker)):
    """Get pump totals, run durations and the events of the last 24 hours."""
    return tracker.get_stats(device_id)
