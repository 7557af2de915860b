"""
Pump State Tracker
==================

This is the BRAIN of pump control!

WHAT IT DOES:
------------
1. Answers "what is the pump of device D doing, and since when?"
2. Turns the pump on/off, rejecting actions that would not change anything
3. Measures how long the pump ran when it is turned off
4. Serves the history and statistics kept by the ledger

HOW STATE IS KEPT:
-----------------
- pump_data    one row per device: the current state (a cache)
- pump_history every accepted action (the ledger, source of truth)

Both are written in the same transaction, so they cannot disagree.
If a device has no status row yet, one is created on first access:
rebuilt from the latest ledger event if there is one, otherwise
"inactive, system initialized".

CONCURRENCY:
-----------
Two requests to activate the same pump at the same time must not both
succeed. Every read-modify-write runs:
    - under a per-device lock (same process), and
    - in one transaction that row-locks the device (across processes,
      PostgreSQL)
so the second caller sees the first caller's write before validating.
"""

import logging
import math
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import insert, select, update

from monitoring_api.database import Database, Gateway, as_utc, pump_data, utc_now
from monitoring_api.errors import InvalidTransitionError
from monitoring_api.models import (
    HistoryAction,
    Pagination,
    PumpAction,
    PumpHistoryResponse,
    PumpState,
    PumpStatsResponse,
    PumpStatusView,
    TriggeredBy,
)
from monitoring_api.services.device_registry import DeviceRegistry, device_from_row
from monitoring_api.services.pump_ledger import PumpLedger
from monitoring_api.utils import KeyedLock, require_pagination, window_start

logger = logging.getLogger(__name__)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, never negative (clock skew clamps to 0)."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, math.floor(seconds))


class PumpTracker:
    """Current pump state per device and the transitions between states."""

    INITIAL_REASON = "system initialized"
    DEFAULT_HISTORY_LIMIT = 50

    def __init__(
        self,
        database: Database,
        registry: DeviceRegistry,
        ledger: Optional[PumpLedger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            database: Shared database handle
            registry: Used to check the device exists (and lock its row)
            ledger: History ledger; a fresh one if not given
            clock: Returns the current aware UTC time. Tests swap this out.
        """
        self.database = database
        self.registry = registry
        self.ledger = ledger or PumpLedger()
        self.clock = clock
        self._device_locks = KeyedLock()

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self, device_id: str) -> PumpStatusView:
        """Current pump view. Creates the default status row on first access."""
        with self._device_locks.hold(device_id):
            with self.database.transaction() as tx:
                self.registry.require(tx, device_id, for_update=True)
                current = self._current_or_initialize(tx, device_id)
                return self._view(tx, device_id, current)

    def set_status(
        self,
        device_id: str,
        action: PumpAction,
        reason: Optional[str] = None,
        triggered_by: TriggeredBy = TriggeredBy.MANUAL,
    ) -> PumpStatusView:
        """
        Turn the pump on or off.

        Raises:
            NotFoundError: Unknown device
            InvalidTransitionError: The pump is already in the requested state.
                Nothing is written.
        """
        action = PumpAction(action)
        triggered_by = TriggeredBy(triggered_by or TriggeredBy.MANUAL)
        target = action.target_state
        recorded = action.recorded_as
        reason = reason or f"Pump {recorded.value}"

        with self._device_locks.hold(device_id):
            with self.database.transaction() as tx:
                self.registry.require(tx, device_id, for_update=True)
                current = self._current_or_initialize(tx, device_id)

                if current["status"] == target.value:
                    raise InvalidTransitionError(
                        f"Pump of device {device_id} is already {target.value}"
                    )

                now = self.clock()
                duration = 0
                if target is PumpState.INACTIVE:
                    duration = elapsed_seconds(current["updated_at"], now)

                tx.execute(
                    update(pump_data)
                    .where(pump_data.c.id == current["id"])
                    .values(
                        status=target.value,
                        duration_seconds=duration,
                        reason=reason,
                        triggered_by=triggered_by.value,
                        updated_at=now,
                    )
                )
                self.ledger.append(
                    tx,
                    device_id,
                    action=recorded,
                    duration_seconds=duration,
                    reason=reason,
                    triggered_by=triggered_by,
                    created_at=now,
                )

                refreshed = self._current(tx, device_id)
                view = self._view(tx, device_id, refreshed)

        if target is PumpState.INACTIVE:
            logger.info(f"[{device_id}] Pump deactivated by {triggered_by.value} after {duration}s")
        else:
            logger.info(f"[{device_id}] Pump activated by {triggered_by.value}")
        return view

    # =========================================================================
    # HISTORY & STATS
    # =========================================================================

    def get_history(
        self,
        device_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> PumpHistoryResponse:
        """A page of ledger events, newest first."""
        require_pagination(limit, offset)
        with self.database.transaction() as tx:
            self.registry.require(tx, device_id)
            events = self.ledger.page(tx, device_id, limit, offset)
            total = self.ledger.count(tx, device_id)
        return PumpHistoryResponse(
            data=events,
            pagination=Pagination.build(total=total, limit=limit, offset=offset),
        )

    def get_stats(self, device_id: str) -> PumpStatsResponse:
        """Ledger aggregates plus every event from the last 24 hours."""
        cutoff = window_start(self.clock(), hours=24)
        with self.database.transaction() as tx:
            device = self.registry.require(tx, device_id)
            stats = self.ledger.stats(tx, device_id)
            recent = self.ledger.since(tx, device_id, cutoff)
        return PumpStatsResponse(device=device_from_row(device), stats=stats, last_24h=recent)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _current(self, tx: Gateway, device_id: str) -> Optional[dict]:
        stmt = (
            select(pump_data)
            .where(pump_data.c.device_id == device_id)
            .order_by(pump_data.c.updated_at.desc(), pump_data.c.id.desc())
            .limit(1)
        )
        return tx.query_one(stmt)

    def _current_or_initialize(self, tx: Gateway, device_id: str) -> dict:
        current = self._current(tx, device_id)
        if current is not None:
            return current

        now = self.clock()
        last_event = self.ledger.latest(tx, device_id)
        if last_event is not None:
            # Status row lost but the ledger knows: rebuild from it
            was_activated = last_event["action"] == HistoryAction.ACTIVATED.value
            values = dict(
                status=(PumpState.ACTIVE if was_activated else PumpState.INACTIVE).value,
                duration_seconds=last_event["duration_seconds"] or 0,
                reason=last_event["reason"],
                triggered_by=last_event["triggered_by"],
                updated_at=last_event["created_at"],
            )
            logger.warning(f"[{device_id}] Pump status rebuilt from ledger event #{last_event['id']}")
        else:
            values = dict(
                status=PumpState.INACTIVE.value,
                duration_seconds=0,
                reason=self.INITIAL_REASON,
                triggered_by=TriggeredBy.AUTOMATIC.value,
                updated_at=now,
            )
            logger.info(f"[{device_id}] Pump status initialized")

        tx.execute(insert(pump_data).values(device_id=device_id, created_at=now, **values))
        return self._current(tx, device_id)

    def _view(self, tx: Gateway, device_id: str, current: dict) -> PumpStatusView:
        summary = self.ledger.activation_summary(tx, device_id)
        return PumpStatusView(
            device_id=device_id,
            is_active=current["status"] == PumpState.ACTIVE.value,
            status=current["status"],
            duration_seconds=current["duration_seconds"] or 0,
            reason=current["reason"],
            triggered_by=current["triggered_by"],
            last_updated=as_utc(current["updated_at"]),
            **summary,
        )
