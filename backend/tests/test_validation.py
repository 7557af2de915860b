from datetime import datetime, timezone

import pytest

from monitoring_api.errors import ValidationError
from monitoring_api.utils import (
    KeyedLock,
    parse_iso_datetime,
    require_pagination,
    validate_device_id,
    validate_soil_moisture,
    validate_temperature,
)


def test_device_id():
    assert validate_device_id("ESP32_001")
    assert validate_device_id("X" * 50)
    assert not validate_device_id("")
    assert not validate_device_id("   ")
    assert not validate_device_id("X" * 51)


def test_soil_moisture():
    assert validate_soil_moisture(0)
    assert validate_soil_moisture(100)
    assert not validate_soil_moisture(101)
    assert not validate_soil_moisture(55.5)
    assert not validate_soil_moisture(True)


def test_temperature():
    assert validate_temperature(None)
    assert validate_temperature(-50)
    assert not validate_temperature(100.1)


def test_pagination():
    require_pagination(1000, 0)
    with pytest.raises(ValidationError):
        require_pagination(1001, 0)


def test_parse_date_only():
    assert parse_iso_datetime("2024-05-01") == datetime(2024, 5, 1, tzinfo=timezone.utc)
    end = parse_iso_datetime("2024-05-01", end_of_day=True)
    assert (end.hour, end.minute, end.second) == (23, 59, 59)


def test_parse_datetime_with_offset():
    assert parse_iso_datetime("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert parse_iso_datetime("2024-05-01T14:00:00+02:00") == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert parse_iso_datetime(None) is None


def test_parse_garbage():
    with pytest.raises(ValidationError):
        parse_iso_datetime("next tuesday")


def test_keyed_lock_forgets_idle_keys():
    locks = KeyedLock()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0
