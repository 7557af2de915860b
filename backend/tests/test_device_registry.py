import pytest
from sqlalchemy import func, select

from monitoring_api.database import devices, pump_data, pump_history, sensor_data
from monitoring_api.errors import ConflictError, NotFoundError, ValidationError
from monitoring_api.models import (
    CreateDeviceRequest,
    PumpAction,
    SensorReadingRequest,
    UpdateDeviceRequest,
)


def _count(database, table, device_id):
    with database.transaction() as tx:
        row = tx.query_one(
            select(func.count().label("total")).select_from(table).where(table.c.device_id == device_id)
        )
    return row["total"]


def test_create_device(registry, clock):
    device = registry.create_device(
        CreateDeviceRequest(device_id="ESP32_001", name="Greenhouse", location="Bench 3")
    )
    assert device.device_id == "ESP32_001"
    assert device.name == "Greenhouse"
    assert device.description is None
    assert device.created_at == clock.now
    assert device.updated_at == clock.now


def test_create_duplicate_device_conflicts(registry, device):
    with pytest.raises(ConflictError):
        registry.create_device(CreateDeviceRequest(device_id="ESP32_001"))


def test_get_device_includes_reading_rollup(registry, ingestion, device, clock):
    empty = registry.get_device("ESP32_001")
    assert empty.total_readings == 0
    assert empty.last_reading is None

    ingestion.ingest(SensorReadingRequest(device_id="ESP32_001", umidade_solo=40, timestamp=1))
    clock.advance(300)
    ingestion.ingest(SensorReadingRequest(device_id="ESP32_001", umidade_solo=45, timestamp=2))

    summary = registry.get_device("ESP32_001")
    assert summary.total_readings == 2
    assert summary.last_reading == clock.now
    assert summary.name == "Greenhouse"


def test_get_unknown_device(registry):
    with pytest.raises(NotFoundError):
        registry.get_device("ESP32_404")


def test_list_devices_newest_first(registry, clock):
    for device_id in ("ESP32_A", "ESP32_B", "ESP32_C"):
        registry.create_device(CreateDeviceRequest(device_id=device_id))
        clock.advance(10)

    listed = [device.device_id for device in registry.list_devices()]
    assert listed == ["ESP32_C", "ESP32_B", "ESP32_A"]


def test_update_changes_only_sent_fields(registry, device, clock):
    clock.advance(60)
    updated = registry.update_device("ESP32_001", UpdateDeviceRequest(location="Bench 4"))

    assert updated.location == "Bench 4"
    assert updated.name == "Greenhouse"
    assert updated.updated_at == clock.now
    assert updated.created_at == device.created_at


def test_update_can_clear_description(registry, device):
    registry.update_device("ESP32_001", UpdateDeviceRequest(description="Ferns"))
    cleared = registry.update_device("ESP32_001", UpdateDeviceRequest(description=None))
    assert cleared.description is None


def test_update_with_nothing_to_change(registry, device):
    with pytest.raises(ValidationError):
        registry.update_device("ESP32_001", UpdateDeviceRequest())


def test_update_unknown_device(registry):
    with pytest.raises(NotFoundError):
        registry.update_device("ESP32_404", UpdateDeviceRequest(name="Ghost"))


def test_delete_removes_everything_for_the_device(registry, ingestion, tracker, database, device):
    registry.create_device(CreateDeviceRequest(device_id="ESP32_002"))
    for value in (10, 20, 30):
        ingestion.ingest(SensorReadingRequest(device_id="ESP32_001", umidade_solo=value, timestamp=value))
    ingestion.ingest(SensorReadingRequest(device_id="ESP32_002", umidade_solo=50, timestamp=1))
    tracker.set_status("ESP32_001", PumpAction.ACTIVATE)
    tracker.set_status("ESP32_001", PumpAction.DEACTIVATE)

    result = registry.delete_device("ESP32_001")

    assert result == {"device_id": "ESP32_001", "readings_deleted": 3, "pump_events_deleted": 2}
    assert _count(database, devices, "ESP32_001") == 0
    assert _count(database, sensor_data, "ESP32_001") == 0
    assert _count(database, pump_data, "ESP32_001") == 0
    assert _count(database, pump_history, "ESP32_001") == 0
    # Other devices are untouched
    assert _count(database, sensor_data, "ESP32_002") == 1


def test_delete_unknown_device(registry):
    with pytest.raises(NotFoundError):
        registry.delete_device("ESP32_404")


def test_ensure_registers_placeholder(registry, database):
    with database.transaction() as tx:
        created = registry.ensure(tx, "board-7")
        again = registry.ensure(tx, "board-7")

    assert created["name"] == "ESP32_board-7"
    assert created["location"] == "Location not set"
    assert again["id"] == created["id"]
