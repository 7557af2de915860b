"""
Input Validation Utilities
===========================

Checks shared by the services. The pydantic request models already reject
most bad input at the HTTP edge; these functions guard the same rules for
callers that use the services directly.

Each `validate_*` function returns True/False; `require_*` and `parse_*`
raise `ValidationError` with a message a person can act on.
"""

import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from monitoring_api.errors import ValidationError

DEVICE_ID_MAX_LENGTH = 50
MAX_PAGE_SIZE = 1000

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_device_id(device_id: str) -> bool:
    """
    Validate a device ID (non-blank, at most 50 characters).

    Args:
        device_id: Device ID string (e.g., "ESP32_001")

    Returns:
        True if valid, False otherwise
    """
    if not device_id or not device_id.strip():
        return False
    return len(device_id) <= DEVICE_ID_MAX_LENGTH


def validate_soil_moisture(value: int) -> bool:
    """Soil humidity is a whole percentage, 0 to 100."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 100


def validate_temperature(value: Optional[float]) -> bool:
    """Temperature is optional; when sent it must be between -50 and 100 °C."""
    return value is None or -50 <= value <= 100


def validate_pagination(limit: int, offset: int) -> bool:
    return 1 <= limit <= MAX_PAGE_SIZE and offset >= 0


def require_device_id(device_id: str) -> str:
    if not validate_device_id(device_id):
        raise ValidationError(
            f"Invalid device_id: must be 1-{DEVICE_ID_MAX_LENGTH} characters"
        )
    return device_id


def require_pagination(limit: int, offset: int):
    if not validate_pagination(limit, offset):
        raise ValidationError(
            f"Invalid pagination: limit must be 1-{MAX_PAGE_SIZE} and offset >= 0 "
            f"(got limit={limit}, offset={offset})"
        )


def parse_iso_datetime(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO 8601 date or datetime query parameter into aware UTC.

    Args:
        value: e.g. "2024-05-01", "2024-05-01T12:00:00", "2024-05-01T12:00:00Z"
        end_of_day: For a date-only value, return the last instant of that day
            instead of midnight (used for inclusive end_date filters)

    Returns:
        The parsed datetime, or None if value is empty

    Raises:
        ValidationError: If the value is not ISO 8601
    """
    if value is None or value == "":
        return None

    text = value.strip()
    try:
        if _DATE_ONLY.match(text):
            day = datetime.fromisoformat(text).date()
            moment = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            # fromisoformat only understands a trailing Z from Python 3.11
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            moment = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}. Use ISO 8601, e.g. 2024-05-01")

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def window_start(now: datetime, hours: int = 24) -> datetime:
    """Cutoff for "last N hours" queries."""
    return now - timedelta(hours=hours)
