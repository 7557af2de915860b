"""
Sensor Ingestion
================

Stores soil readings posted by the boards and serves them back.

WRITE PATH:
----------
One reading per call. A reading from a device we have never seen is NOT
rejected: the device is registered on the spot with a placeholder name
(`ESP32_<device_id>`), so a board never loses data because nobody
registered it first.

READ PATH:
---------
Filter by device and by created_at range, page with limit/offset, sort
asc/desc by created_at. A count with the same filters feeds the
pagination metadata.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, func, insert, select, update

from monitoring_api.database import Database, Gateway, as_utc, devices, sensor_data, utc_now
from monitoring_api.errors import NotFoundError, ValidationError
from monitoring_api.models import (
    DeviceStatsResponse,
    Pagination,
    ReadingListResponse,
    ReadingPoint,
    ReadingStats,
    SensorReadingDetail,
    SensorReadingRequest,
    SensorReadingResponse,
    SortOrder,
)
from monitoring_api.services.device_registry import DeviceRegistry, device_from_row
from monitoring_api.utils import (
    require_device_id,
    require_pagination,
    validate_soil_moisture,
    validate_temperature,
    window_start,
)

logger = logging.getLogger(__name__)

_DETAIL_COLUMNS = (
    sensor_data.c.id,
    sensor_data.c.device_id,
    sensor_data.c.umidade_solo,
    sensor_data.c.temperatura,
    sensor_data.c.timestamp,
    sensor_data.c.created_at,
    devices.c.name.label("device_name"),
    devices.c.location.label("device_location"),
)


def _reading_from_row(row: dict, model=SensorReadingResponse):
    return model(**{**row, "created_at": as_utc(row["created_at"])})


class SensorIngestion:
    """Reading writes (with device auto-registration) and filtered reads."""

    DEFAULT_LIMIT = 100

    def __init__(self, database: Database, registry: DeviceRegistry, clock: Callable = utc_now):
        self.database = database
        self.registry = registry
        self.clock = clock

    # =========================================================================
    # WRITE
    # =========================================================================

    def ingest(self, reading: SensorReadingRequest) -> SensorReadingResponse:
        """Validate and store one reading, registering its device if needed."""
        self._check_reading(reading)
        now = self.clock()

        with self.registry.registration_lock(reading.device_id):
            with self.database.transaction() as tx:
                self.registry.ensure(tx, reading.device_id)
                result = tx.execute(
                    insert(sensor_data).values(
                        device_id=reading.device_id,
                        umidade_solo=reading.umidade_solo,
                        temperatura=reading.temperatura,
                        timestamp=reading.timestamp,
                        created_at=now,
                    )
                )
                row = self._require_reading(tx, result.inserted_id)

        logger.info(f"[{reading.device_id}] Reading stored: soil humidity {reading.umidade_solo}%")
        return _reading_from_row(row)

    def update_reading(self, reading_id: int, reading: SensorReadingRequest) -> SensorReadingResponse:
        """Administrative correction of a stored reading."""
        self._check_reading(reading)
        with self.database.transaction() as tx:
            self._require_reading(tx, reading_id)
            self.registry.require(tx, reading.device_id)
            tx.execute(
                update(sensor_data)
                .where(sensor_data.c.id == reading_id)
                .values(
                    device_id=reading.device_id,
                    umidade_solo=reading.umidade_solo,
                    temperatura=reading.temperatura,
                    timestamp=reading.timestamp,
                )
            )
            row = self._require_reading(tx, reading_id)

        logger.info(f"[{reading.device_id}] Reading #{reading_id} corrected")
        return _reading_from_row(row)

    def delete_reading(self, reading_id: int):
        with self.database.transaction() as tx:
            self._require_reading(tx, reading_id)
            tx.execute(delete(sensor_data).where(sensor_data.c.id == reading_id))
        logger.info(f"Reading #{reading_id} deleted")

    # =========================================================================
    # READ
    # =========================================================================

    def get_reading(self, reading_id: int) -> SensorReadingDetail:
        stmt = (
            select(*_DETAIL_COLUMNS)
            .select_from(sensor_data.outerjoin(devices, devices.c.device_id == sensor_data.c.device_id))
            .where(sensor_data.c.id == reading_id)
        )
        with self.database.transaction() as tx:
            row = tx.query_one(stmt)
        if row is None:
            raise NotFoundError(f"Reading with ID {reading_id} was not found")
        return _reading_from_row(row, SensorReadingDetail)

    def list_readings(
        self,
        device_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        order: SortOrder = SortOrder.DESC,
    ) -> ReadingListResponse:
        """
        A filtered page of readings with device name/location.

        Args:
            device_id: Only this device's readings
            start_date: created_at >= start_date
            end_date: created_at <= end_date
            limit: Page size, 1-1000
            offset: Records to skip
            order: "asc" or "desc" by created_at
        """
        require_pagination(limit, offset)
        conditions = self._filters(device_id, start_date, end_date)

        if SortOrder(order) is SortOrder.ASC:
            ordering = (sensor_data.c.created_at.asc(), sensor_data.c.id.asc())
        else:
            ordering = (sensor_data.c.created_at.desc(), sensor_data.c.id.desc())

        stmt = (
            select(*_DETAIL_COLUMNS)
            .select_from(sensor_data.outerjoin(devices, devices.c.device_id == sensor_data.c.device_id))
            .where(*conditions)
            .order_by(*ordering)
            .limit(limit)
            .offset(offset)
        )

        with self.database.transaction() as tx:
            rows = tx.query_many(stmt)
            total = self._count(tx, conditions)

        return ReadingListResponse(
            data=[_reading_from_row(row, SensorReadingDetail) for row in rows],
            pagination=Pagination.build(total=total, limit=limit, offset=offset),
        )

    def count_readings(
        self,
        device_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> int:
        with self.database.transaction() as tx:
            return self._count(tx, self._filters(device_id, start_date, end_date))

    def summary(self, device_id: Optional[str] = None) -> ReadingStats:
        """Aggregates over all readings, or one device's readings."""
        with self.database.transaction() as tx:
            return self._stats(tx, device_id)

    def device_stats(self, device_id: str) -> DeviceStatsResponse:
        """One device's reading aggregates plus its readings from the last 24 hours."""
        cutoff = window_start(self.clock(), hours=24)
        stmt = (
            select(sensor_data.c.umidade_solo, sensor_data.c.temperatura, sensor_data.c.created_at)
            .where(sensor_data.c.device_id == device_id)
            .where(sensor_data.c.created_at >= cutoff)
            .order_by(sensor_data.c.created_at.desc(), sensor_data.c.id.desc())
        )
        with self.database.transaction() as tx:
            device = self.registry.require(tx, device_id)
            stats = self._stats(tx, device_id)
            recent = tx.query_many(stmt)

        return DeviceStatsResponse(
            device=device_from_row(device),
            stats=stats,
            last_24h=[_reading_from_row(row, ReadingPoint) for row in recent],
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _check_reading(reading: SensorReadingRequest):
        require_device_id(reading.device_id)
        if not validate_soil_moisture(reading.umidade_solo):
            raise ValidationError(f"Invalid umidade_solo: {reading.umidade_solo}. Must be 0-100.")
        if not validate_temperature(reading.temperatura):
            raise ValidationError(f"Invalid temperatura: {reading.temperatura}. Must be -50 to 100.")
        if reading.timestamp < 0:
            raise ValidationError(f"Invalid timestamp: {reading.timestamp}. Must be >= 0.")

    @staticmethod
    def _filters(device_id, start_date, end_date) -> list:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        conditions = []
        if device_id:
            conditions.append(sensor_data.c.device_id == device_id)
        if start_date:
            conditions.append(sensor_data.c.created_at >= start_date)
        if end_date:
            conditions.append(sensor_data.c.created_at <= end_date)
        return conditions

    @staticmethod
    def _count(tx: Gateway, conditions: list) -> int:
        stmt = select(func.count(sensor_data.c.id).label("total")).where(*conditions)
        return tx.query_one(stmt)["total"]

    @staticmethod
    def _require_reading(tx: Gateway, reading_id: int) -> dict:
        row = tx.query_one(select(sensor_data).where(sensor_data.c.id == reading_id))
        if row is None:
            raise NotFoundError(f"Reading with ID {reading_id} was not found")
        return row

    @staticmethod
    def _stats(tx: Gateway, device_id: Optional[str]) -> ReadingStats:
        column = sensor_data.c
        stmt = select(
            func.count(column.id).label("total_readings"),
            func.avg(column.umidade_solo).label("avg_umidade"),
            func.min(column.umidade_solo).label("min_umidade"),
            func.max(column.umidade_solo).label("max_umidade"),
            func.avg(column.temperatura).label("avg_temperatura"),
            func.min(column.temperatura).label("min_temperatura"),
            func.max(column.temperatura).label("max_temperatura"),
            func.min(column.created_at).label("first_reading"),
            func.max(column.created_at).label("last_reading"),
        )
        if device_id:
            stmt = stmt.where(column.device_id == device_id)

        row = tx.query_one(stmt) or {}
        return ReadingStats(
            total_readings=row.get("total_readings") or 0,
            avg_umidade=_rounded(row.get("avg_umidade")),
            min_umidade=row.get("min_umidade"),
            max_umidade=row.get("max_umidade"),
            avg_temperatura=_rounded(row.get("avg_temperatura")),
            min_temperatura=row.get("min_temperatura"),
            max_temperatura=row.get("max_temperatura"),
            first_reading=as_utc(row.get("first_reading")),
            last_reading=as_utc(row.get("last_reading")),
        )


def _rounded(value) -> Optional[float]:
    return round(float(value), 2) if value is not None else None
