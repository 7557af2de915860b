"""
Services Package
================

These are the "workers" that do the actual work.

- DeviceRegistry: Keeps the catalog of ESP32 boards
- SensorIngestion: Stores and serves soil readings
- PumpLedger: Append-only pump history
- PumpTracker: Current pump state and on/off transitions
"""

from .device_registry import DeviceRegistry
from .sensor_ingestion import SensorIngestion
from .pump_ledger import PumpLedger
from .pump_tracker import PumpTracker

__all__ = [
    "DeviceRegistry",
    "SensorIngestion",
    "PumpLedger",
    "PumpTracker",
]
