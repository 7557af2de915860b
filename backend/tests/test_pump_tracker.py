import threading

import pytest
from sqlalchemy import delete, select

from monitoring_api.database import as_utc, pump_data
from monitoring_api.errors import InvalidTransitionError, NotFoundError, PersistenceError, ValidationError
from monitoring_api.models import PumpAction, TriggeredBy
from monitoring_api.services.pump_tracker import elapsed_seconds


# =============================================================================
# STATUS
# =============================================================================

def test_first_status_is_inactive_and_initialized(tracker, device, clock):
    status = tracker.get_status("ESP32_001")

    assert status.is_active is False
    assert status.status == "inactive"
    assert status.reason == "system initialized"
    assert status.triggered_by == TriggeredBy.AUTOMATIC
    assert status.duration_seconds == 0
    assert status.total_activations == 0
    assert status.last_updated == clock.now


def test_lazy_initialization_creates_one_row(tracker, device, database, clock):
    first = tracker.get_status("ESP32_001")
    clock.advance(60)
    second = tracker.get_status("ESP32_001")

    assert second.last_updated == first.last_updated
    with database.transaction() as tx:
        rows = tx.query_many(select(pump_data).where(pump_data.c.device_id == "ESP32_001"))
    assert len(rows) == 1


def test_status_of_unknown_device(tracker):
    with pytest.raises(NotFoundError):
        tracker.get_status("ESP32_404")


# =============================================================================
# TRANSITIONS
# =============================================================================

def test_activate_then_deactivate_records_duration(tracker, device, clock):
    active = tracker.set_status("ESP32_001", PumpAction.ACTIVATE, reason="Dry soil")
    assert active.is_active is True
    assert active.reason == "Dry soil"
    assert active.triggered_by == TriggeredBy.MANUAL
    assert active.duration_seconds == 0

    clock.advance(3)
    inactive = tracker.set_status("ESP32_001", PumpAction.DEACTIVATE, triggered_by=TriggeredBy.SCHEDULE)

    assert inactive.is_active is False
    assert inactive.duration_seconds == 3
    assert inactive.reason == "Pump deactivated"
    assert inactive.triggered_by == TriggeredBy.SCHEDULE
    assert inactive.total_activations == 1
    assert inactive.last_activated == active.last_updated
    assert inactive.last_deactivated == clock.now


def test_three_second_run_shows_up_in_stats(tracker, device, clock):
    assert tracker.get_status("ESP32_001").duration_seconds == 0

    assert tracker.set_status("ESP32_001", PumpAction.ACTIVATE).is_active is True
    clock.advance(3)
    stopped = tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)

    assert stopped.is_active is False
    assert stopped.duration_seconds == 3
    assert tracker.get_history("ESP32_001").data[0].duration_seconds == 3

    stats = tracker.get_stats("ESP32_001").stats
    assert stats.total_activations == 1
    assert stats.total_deactivations == 1


def test_duration_is_floored(tracker, device, clock):
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    clock.advance(7.9)
    status = tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)
    assert status.duration_seconds == 7


def test_clock_going_backwards_records_zero(tracker, device, clock):
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    clock.advance(-30)
    status = tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)
    assert status.duration_seconds == 0


def test_default_reason(tracker, device):
    status = tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    assert status.reason == "Pump activated"


def test_activate_twice_is_rejected_and_writes_nothing(tracker, device):
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)

    with pytest.raises(InvalidTransitionError):
        tracker.set_status("ESP32_001", PumpAction.ACTIVATE)

    history = tracker.get_history("ESP32_001")
    assert history.pagination.total == 1


def test_deactivate_fresh_pump_is_rejected(tracker, device):
    with pytest.raises(InvalidTransitionError):
        tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)

    assert tracker.get_history("ESP32_001").pagination.total == 0
    assert tracker.get_status("ESP32_001").reason == "system initialized"


def test_set_status_unknown_device(tracker):
    with pytest.raises(NotFoundError):
        tracker.set_status("ESP32_404", PumpAction.ACTIVATE)


def test_status_rebuilt_from_ledger_when_cache_is_lost(tracker, device, database, clock):
    activated = tracker.set_status("ESP32_001", PumpAction.ACTIVATE, reason="Dry soil")
    with database.transaction() as tx:
        tx.execute(delete(pump_data).where(pump_data.c.device_id == "ESP32_001"))

    clock.advance(120)
    status = tracker.get_status("ESP32_001")

    assert status.is_active is True
    assert status.reason == "Dry soil"
    assert status.last_updated == activated.last_updated

    stopped = tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)
    assert stopped.duration_seconds == 120


def test_concurrent_activations_only_one_wins(tracker, device):
    outcomes = []
    outcomes_lock = threading.Lock()
    start = threading.Barrier(8)

    def activate():
        start.wait()
        try:
            tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
            result = "ok"
        except InvalidTransitionError:
            result = "rejected"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=activate) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("rejected") == 7
    assert tracker.get_history("ESP32_001").pagination.total == 1


def test_failed_history_append_rolls_back_status(tracker, device, database, clock, monkeypatch):
    before = tracker.get_status("ESP32_001")
    clock.advance(30)

    def broken_append(*args, **kwargs):
        raise PersistenceError("Database operation failed")

    monkeypatch.setattr(tracker.ledger, "append", broken_append)
    with pytest.raises(PersistenceError):
        tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    monkeypatch.undo()

    with database.transaction() as tx:
        row = tx.query_one(select(pump_data).where(pump_data.c.device_id == "ESP32_001"))
    assert row["status"] == "inactive"
    assert as_utc(row["updated_at"]) == before.last_updated

    after = tracker.get_status("ESP32_001")
    assert after.is_active is False
    assert after.last_updated == before.last_updated
    assert tracker.get_history("ESP32_001").pagination.total == 0


# =============================================================================
# HISTORY & STATS
# =============================================================================

def _cycle(tracker, clock, runs):
    for seconds in runs:
        tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
        clock.advance(seconds)
        tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)
        clock.advance(1)


def test_history_pages_are_disjoint_and_newest_first(tracker, device, clock):
    _cycle(tracker, clock, [5, 10, 15])

    first = tracker.get_history("ESP32_001", limit=4, offset=0)
    second = tracker.get_history("ESP32_001", limit=4, offset=4)

    assert first.pagination.total == 6
    assert first.pagination.has_more is True
    assert second.pagination.has_more is False
    assert len(first.data) == 4
    assert len(second.data) == 2
    assert not {event.id for event in first.data} & {event.id for event in second.data}

    created = [event.created_at for event in first.data + second.data]
    assert created == sorted(created, reverse=True)
    assert first.data[0].action == "deactivated"
    assert first.data[0].duration_seconds == 15


def test_history_rejects_bad_pagination(tracker, device):
    with pytest.raises(ValidationError):
        tracker.get_history("ESP32_001", limit=0)
    with pytest.raises(ValidationError):
        tracker.get_history("ESP32_001", limit=1001)
    with pytest.raises(ValidationError):
        tracker.get_history("ESP32_001", offset=-1)


def test_stats_average_spans_every_event(tracker, device, clock):
    _cycle(tracker, clock, [10, 20])
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE, triggered_by=TriggeredBy.AUTOMATIC)

    response = tracker.get_stats("ESP32_001")
    stats = response.stats

    assert response.device.device_id == "ESP32_001"
    assert stats.total_actions == 5
    assert stats.total_activations == 3
    assert stats.total_deactivations == 2
    assert stats.total_duration_seconds == 30
    assert stats.avg_duration_seconds == 6
    assert stats.max_duration_seconds == 20
    assert stats.manual_actions == 4
    assert stats.automatic_actions == 1
    assert stats.scheduled_actions == 0
    assert len(response.last_24h) == 5


def test_stats_average_includes_activation_events(tracker, device, clock):
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    clock.advance(10)
    tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)

    assert tracker.get_stats("ESP32_001").stats.avg_duration_seconds == 5


def test_stats_average_rounds_half_up(tracker, device, clock):
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    clock.advance(5)
    tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)

    # (0 + 5) / 2 = 2.5
    assert tracker.get_stats("ESP32_001").stats.avg_duration_seconds == 3


def test_stats_last_24h_window(tracker, device, clock):
    _cycle(tracker, clock, [10])
    clock.advance(25 * 3600)
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)

    response = tracker.get_stats("ESP32_001")
    assert response.stats.total_actions == 3
    assert len(response.last_24h) == 1


def test_stats_empty_ledger(tracker, device):
    stats = tracker.get_stats("ESP32_001").stats
    assert stats.total_actions == 0
    assert stats.avg_duration_seconds == 0
    assert stats.first_action is None


def test_elapsed_seconds_never_negative(clock):
    later = clock.now
    clock.advance(-5)
    assert elapsed_seconds(later, clock.now) == 0
    assert elapsed_seconds(clock.now, later) == 5
