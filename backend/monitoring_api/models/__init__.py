"""
Models Package
==============

This is where all our data models live.
Import from here instead of the individual files.

Example:
    from monitoring_api.models import PumpAction, PumpControlRequest
"""

from .common import Pagination
from .device import (
    CreateDeviceRequest,
    UpdateDeviceRequest,
    DeviceResponse,
    DeviceSummaryResponse,
    DeviceListResponse,
)
from .sensor import (
    SortOrder,
    SensorReadingRequest,
    SensorReadingResponse,
    SensorReadingDetail,
    ReadingListResponse,
    ReadingStats,
    ReadingPoint,
    DeviceStatsResponse,
)
from .pump import (
    # The pump state machine
    PumpState,
    PumpAction,
    HistoryAction,
    TriggeredBy,

    # What callers send us
    PumpControlRequest,

    # What we send back
    PumpStatusView,
    PumpHistoryEvent,
    PumpHistoryResponse,
    PumpStats,
    PumpStatsResponse,
)

__all__ = [
    "Pagination",
    "CreateDeviceRequest",
    "UpdateDeviceRequest",
    "DeviceResponse",
    "DeviceSummaryResponse",
    "DeviceListResponse",
    "SortOrder",
    "SensorReadingRequest",
    "SensorReadingResponse",
    "SensorReadingDetail",
    "ReadingListResponse",
    "ReadingStats",
    "ReadingPoint",
    "DeviceStatsResponse",
    "PumpState",
    "PumpAction",
    "HistoryAction",
    "TriggeredBy",
    "PumpControlRequest",
    "PumpStatusView",
    "PumpHistoryEvent",
    "PumpHistoryResponse",
    "PumpStats",
    "PumpStatsResponse",
]
