"""
Pump Models
===========
Pydantic models for pump control, status and history.

STATE MODEL:
-----------
A pump is either ACTIVE or INACTIVE. Actions are edge-triggered:

    INACTIVE --activate--> ACTIVE --deactivate--> INACTIVE

Asking for the state the pump is already in is rejected (400), it is not a
silent no-op. Every accepted action appends one event to the history
ledger; a deactivation records how long the pump ran.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from monitoring_api.models.common import Pagination
from monitoring_api.models.device import DeviceResponse


# =============================================================================
# ENUMS
# =============================================================================

class PumpState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PumpAction(str, Enum):
    """What a caller asks the pump to do."""
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"

    @property
    def target_state(self) -> PumpState:
        return PumpState.ACTIVE if self is PumpAction.ACTIVATE else PumpState.INACTIVE

    @property
    def recorded_as(self) -> "HistoryAction":
        return HistoryAction.ACTIVATED if self is PumpAction.ACTIVATE else HistoryAction.DEACTIVATED


class HistoryAction(str, Enum):
    """What the ledger records once an action succeeded."""
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"


class TriggeredBy(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    SCHEDULE = "schedule"


# =============================================================================
# REQUEST MODELS
# =============================================================================

class PumpControlRequest(BaseModel):
    """
    Request body for turning a pump on or off.

    Example Request:
        POST /api/pump/ESP32_001/control
        {
            "action": "activate",
            "reason": "Soil below 30%",
            "triggered_by": "manual"
        }
    """
    action: PumpAction
    reason: Optional[str] = Field(None, max_length=200)
    triggered_by: TriggeredBy = Field(default=TriggeredBy.MANUAL)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class PumpStatusView(BaseModel):
    """
    What the pump is doing now and since when.

    duration_seconds is the length of the last completed run; it is only
    meaningful right after a deactivation and is 0 while active.
    """
    device_id: str
    is_active: bool
    status: PumpState
    duration_seconds: int = 0
    reason: Optional[str] = None
    triggered_by: Optional[TriggeredBy] = None
    last_updated: datetime = Field(..., description="When the current state began")
    total_activations: int = 0
    last_activated: Optional[datetime] = None
    last_deactivated: Optional[datetime] = None


class PumpHistoryEvent(BaseModel):
    id: int
    action: HistoryAction
    duration_seconds: int = 0
    reason: Optional[str] = None
    triggered_by: Optional[TriggeredBy] = None
    created_at: datetime


class PumpHistoryResponse(BaseModel):
    data: list[PumpHistoryEvent]
    pagination: Pagination


class PumpStats(BaseModel):
    total_actions: int = 0
    total_activations: int = 0
    total_deactivations: int = 0
    total_duration_seconds: int = 0
    avg_duration_seconds: int = Field(0, description="Mean duration over all events, rounded half up")
    max_duration_seconds: int = 0
    first_action: Optional[datetime] = None
    last_action: Optional[datetime] = None
    manual_actions: int = 0
    automatic_actions: int = 0
    scheduled_actions: int = 0


class PumpStatsResponse(BaseModel):
    device: DeviceResponse
    stats: PumpStats
    last_24h: list[PumpHistoryEvent]
