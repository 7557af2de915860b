"""
Pump History Ledger
===================

Append-only record of every accepted pump action.

The ledger is the source of truth for pump activity: counts, run
durations, first/last action, and the last known state of a pump when no
status row is cached. Events are only ever inserted; nothing here updates
or deletes them. (They go away only when their device is deleted.)

All methods take the caller's `Gateway`, so an append always commits or
rolls back together with the status write that caused it.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, insert, select

from monitoring_api.database import Gateway, as_utc, pump_history
from monitoring_api.models import (
    HistoryAction,
    PumpHistoryEvent,
    PumpStats,
    TriggeredBy,
)

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = (
    pump_history.c.id,
    pump_history.c.action,
    pump_history.c.duration_seconds,
    pump_history.c.reason,
    pump_history.c.triggered_by,
    pump_history.c.created_at,
)

# Newest first; id breaks ties between events written in the same instant
_NEWEST_FIRST = (pump_history.c.created_at.desc(), pump_history.c.id.desc())


def _count_where(condition):
    return func.count(case((condition, 1)))


def event_from_row(row: dict) -> PumpHistoryEvent:
    return PumpHistoryEvent(**{**row, "created_at": as_utc(row["created_at"])})


def _round_half_up(value) -> int:
    """2.5 -> 3, not the banker's rounding of round()."""
    if value is None:
        return 0
    return math.floor(float(value) + 0.5)


class PumpLedger:
    """Appends and aggregates pump history events."""

    def append(
        self,
        tx: Gateway,
        device_id: str,
        action: HistoryAction,
        duration_seconds: int,
        reason: str,
        triggered_by: TriggeredBy,
        created_at: datetime,
    ) -> int:
        result = tx.execute(
            insert(pump_history).values(
                device_id=device_id,
                action=action.value,
                duration_seconds=duration_seconds,
                reason=reason,
                triggered_by=triggered_by.value,
                created_at=created_at,
            )
        )
        logger.debug(f"[{device_id}] Ledger event #{result.inserted_id}: {action.value}")
        return result.inserted_id

    def latest(self, tx: Gateway, device_id: str) -> Optional[dict]:
        """The most recent event, or None if the pump never changed state."""
        stmt = (
            select(*_EVENT_COLUMNS)
            .where(pump_history.c.device_id == device_id)
            .order_by(*_NEWEST_FIRST)
            .limit(1)
        )
        return tx.query_one(stmt)

    def page(self, tx: Gateway, device_id: str, limit: int, offset: int) -> list[PumpHistoryEvent]:
        stmt = (
            select(*_EVENT_COLUMNS)
            .where(pump_history.c.device_id == device_id)
            .order_by(*_NEWEST_FIRST)
            .limit(limit)
            .offset(offset)
        )
        return [event_from_row(row) for row in tx.query_many(stmt)]

    def count(self, tx: Gateway, device_id: str) -> int:
        stmt = select(func.count(pump_history.c.id).label("total")).where(
            pump_history.c.device_id == device_id
        )
        return tx.query_one(stmt)["total"]

    def since(self, tx: Gateway, device_id: str, cutoff: datetime) -> list[PumpHistoryEvent]:
        stmt = (
            select(*_EVENT_COLUMNS)
            .where(pump_history.c.device_id == device_id)
            .where(pump_history.c.created_at >= cutoff)
            .order_by(*_NEWEST_FIRST)
        )
        return [event_from_row(row) for row in tx.query_many(stmt)]

    def activation_summary(self, tx: Gateway, device_id: str) -> dict:
        """total_activations, last_activated, last_deactivated for the status view."""
        activated = pump_history.c.action == HistoryAction.ACTIVATED.value
        deactivated = pump_history.c.action == HistoryAction.DEACTIVATED.value
        stmt = select(
            _count_where(activated).label("total_activations"),
            func.max(case((activated, pump_history.c.created_at))).label("last_activated"),
            func.max(case((deactivated, pump_history.c.created_at))).label("last_deactivated"),
        ).where(pump_history.c.device_id == device_id)

        row = tx.query_one(stmt) or {}
        return {
            "total_activations": row.get("total_activations") or 0,
            "last_activated": as_utc(row.get("last_activated")),
            "last_deactivated": as_utc(row.get("last_deactivated")),
        }

    def stats(self, tx: Gateway, device_id: str) -> PumpStats:
        column = pump_history.c
        deactivated = column.action == HistoryAction.DEACTIVATED.value
        stmt = select(
            func.count(column.id).label("total_actions"),
            _count_where(column.action == HistoryAction.ACTIVATED.value).label("total_activations"),
            _count_where(deactivated).label("total_deactivations"),
            func.sum(column.duration_seconds).label("total_duration_seconds"),
            # Over every event; activations count as 0
            func.avg(column.duration_seconds).label("avg_duration_seconds"),
            func.max(column.duration_seconds).label("max_duration_seconds"),
            func.min(column.created_at).label("first_action"),
            func.max(column.created_at).label("last_action"),
            _count_where(column.triggered_by == TriggeredBy.MANUAL.value).label("manual_actions"),
            _count_where(column.triggered_by == TriggeredBy.AUTOMATIC.value).label("automatic_actions"),
            _count_where(column.triggered_by == TriggeredBy.SCHEDULE.value).label("scheduled_actions"),
        ).where(column.device_id == device_id)

        row = tx.query_one(stmt) or {}
        average = row.get("avg_duration_seconds")
        return PumpStats(
            total_actions=row.get("total_actions") or 0,
            total_activations=row.get("total_activations") or 0,
            total_deactivations=row.get("total_deactivations") or 0,
            total_duration_seconds=int(row.get("total_duration_seconds") or 0),
            avg_duration_seconds=_round_half_up(average),
            max_duration_seconds=int(row.get("max_duration_seconds") or 0),
            first_action=as_utc(row.get("first_action")),
            last_action=as_utc(row.get("last_action")),
            manual_actions=row.get("manual_actions") or 0,
            automatic_actions=row.get("automatic_actions") or 0,
            scheduled_actions=row.get("scheduled_actions") or 0,
        )
