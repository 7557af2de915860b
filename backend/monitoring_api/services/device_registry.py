"""
Device Registry
===============

The catalog of ESP32 boards, keyed by `device_id`.

WHAT IT DOES:
------------
1. Register, read, list, update and delete devices
2. Acts as the existence gate for the pump tracker and sensor ingestion:
   - `require()` -> the device row, or NotFoundError
   - `ensure()`  -> the device row, registering a placeholder if missing

Deleting a device removes its readings first, then its pump status and
history, then the device itself, all in one transaction.
"""

import logging
from typing import Callable, Optional

from sqlalchemy import delete, func, insert, select, update

from monitoring_api.database import (
    Database,
    Gateway,
    as_utc,
    devices,
    pump_data,
    pump_history,
    sensor_data,
    utc_now,
)
from monitoring_api.errors import ConflictError, NotFoundError, ValidationError
from monitoring_api.models import (
    CreateDeviceRequest,
    DeviceResponse,
    DeviceSummaryResponse,
    UpdateDeviceRequest,
)
from monitoring_api.utils import KeyedLock, require_device_id

logger = logging.getLogger(__name__)


def device_from_row(row: dict) -> DeviceResponse:
    return DeviceResponse(
        **{
            **row,
            "created_at": as_utc(row["created_at"]),
            "updated_at": as_utc(row["updated_at"]),
        }
    )


class DeviceRegistry:
    """Keyed catalog of devices."""

    PLACEHOLDER_LOCATION = "Location not set"

    def __init__(self, database: Database, clock: Callable = utc_now):
        self.database = database
        self.clock = clock
        self._registration_locks = KeyedLock()

    # =========================================================================
    # EXISTENCE GATE (used inside other services' transactions)
    # =========================================================================

    def find(self, tx: Gateway, device_id: str, for_update: bool = False) -> Optional[dict]:
        stmt = select(devices).where(devices.c.device_id == device_id)
        if for_update:
            # Row lock on PostgreSQL; SQLite renders no FOR UPDATE clause
            stmt = stmt.with_for_update()
        return tx.query_one(stmt)

    def require(self, tx: Gateway, device_id: str, for_update: bool = False) -> dict:
        device = self.find(tx, device_id, for_update=for_update)
        if device is None:
            raise NotFoundError(f"Device with ID {device_id} was not found")
        return device

    def ensure(self, tx: Gateway, device_id: str) -> dict:
        """Return the device, registering it with placeholder metadata if unknown."""
        device = self.find(tx, device_id)
        if device is not None:
            return device

        now = self.clock()
        tx.execute(
            insert(devices).values(
                device_id=device_id,
                name=f"ESP32_{device_id}",
                location=self.PLACEHOLDER_LOCATION,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(f"[{device_id}] Unknown device auto-registered")
        return self.require(tx, device_id)

    def registration_lock(self, device_id: str):
        """Serializes first-contact auto-registration for one device_id."""
        return self._registration_locks.hold(device_id)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_device(self, request: CreateDeviceRequest) -> DeviceResponse:
        device_id = require_device_id(request.device_id)
        now = self.clock()

        with self.registration_lock(device_id):
            with self.database.transaction() as tx:
                if self.find(tx, device_id) is not None:
                    raise ConflictError(f"Device with ID {device_id} is already registered")

                tx.execute(
                    insert(devices).values(
                        device_id=device_id,
                        name=request.name,
                        location=request.location,
                        description=request.description,
                        created_at=now,
                        updated_at=now,
                    )
                )
                row = self.require(tx, device_id)

        logger.info(f"[{device_id}] Device registered")
        return device_from_row(row)

    def get_device(self, device_id: str) -> DeviceSummaryResponse:
        with self.database.transaction() as tx:
            row = tx.query_one(self._summary_query().where(devices.c.device_id == device_id))
        if row is None:
            raise NotFoundError(f"Device with ID {device_id} was not found")
        return self._summary_from_row(row)

    def list_devices(self) -> list[DeviceSummaryResponse]:
        stmt = self._summary_query().order_by(devices.c.created_at.desc(), devices.c.id.desc())
        with self.database.transaction() as tx:
            rows = tx.query_many(stmt)
        return [self._summary_from_row(row) for row in rows]

    def update_device(self, device_id: str, request: UpdateDeviceRequest) -> DeviceResponse:
        """Change only the fields present in the request."""
        changes = request.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("Nothing to update: send name, location or description")
        changes["updated_at"] = self.clock()

        with self.database.transaction() as tx:
            self.require(tx, device_id)
            tx.execute(update(devices).where(devices.c.device_id == device_id).values(**changes))
            row = self.require(tx, device_id)

        logger.info(f"[{device_id}] Device updated: {', '.join(sorted(changes))}")
        return device_from_row(row)

    def delete_device(self, device_id: str) -> dict:
        """Remove a device and everything recorded for it."""
        with self.database.transaction() as tx:
            self.require(tx, device_id, for_update=True)
            readings = tx.execute(delete(sensor_data).where(sensor_data.c.device_id == device_id))
            tx.execute(delete(pump_data).where(pump_data.c.device_id == device_id))
            events = tx.execute(delete(pump_history).where(pump_history.c.device_id == device_id))
            tx.execute(delete(devices).where(devices.c.device_id == device_id))

        logger.info(
            f"[{device_id}] Device deleted with {readings.rows_affected} readings "
            f"and {events.rows_affected} pump events"
        )
        return {
            "device_id": device_id,
            "readings_deleted": readings.rows_affected,
            "pump_events_deleted": events.rows_affected,
        }

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _summary_query():
        per_device = (
            select(
                sensor_data.c.device_id,
                func.count(sensor_data.c.id).label("total_readings"),
                func.min(sensor_data.c.created_at).label("first_reading"),
                func.max(sensor_data.c.created_at).label("last_reading"),
            )
            .group_by(sensor_data.c.device_id)
            .subquery()
        )
        return select(
            devices,
            func.coalesce(per_device.c.total_readings, 0).label("total_readings"),
            per_device.c.first_reading,
            per_device.c.last_reading,
        ).select_from(
            devices.outerjoin(per_device, per_device.c.device_id == devices.c.device_id)
        )

    @staticmethod
    def _summary_from_row(row: dict) -> DeviceSummaryResponse:
        return DeviceSummaryResponse(
            **{
                **row,
                "created_at": as_utc(row["created_at"]),
                "updated_at": as_utc(row["updated_at"]),
                "first_reading": as_utc(row["first_reading"]),
                "last_reading": as_utc(row["last_reading"]),
            }
        )
