"""Shared fixtures: a throwaway SQLite database, a controllable clock, the services and an HTTP client."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from monitoring_api.database import Database
from monitoring_api.main import Config, app
from monitoring_api.models import CreateDeviceRequest
from monitoring_api.services import DeviceRegistry, PumpLedger, PumpTracker, SensorIngestion


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'monitoring.db'}")
    db.init()
    yield db
    db.close()


@pytest.fixture
def registry(database, clock):
    return DeviceRegistry(database, clock=clock)


@pytest.fixture
def ingestion(database, registry, clock):
    return SensorIngestion(database, registry, clock=clock)


@pytest.fixture
def tracker(database, registry, clock):
    return PumpTracker(database, registry, ledger=PumpLedger(), clock=clock)


@pytest.fixture
def device(registry):
    return registry.create_device(
        CreateDeviceRequest(device_id="ESP32_001", name="Greenhouse", location="Bench 3")
    )


@pytest.fixture
def client(tmp_path, monkeypatch, clock):
    monkeypatch.setattr(Config, "DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    with TestClient(app) as test_client:
        app.state.pump_tracker.clock = clock
        yield test_client
