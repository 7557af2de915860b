"""
Errors
======

Every failure the services report to a caller is one of these.
The HTTP layer turns them into JSON responses using `status_code` and
`title`, so services never need to know about HTTP.

    MonitorError
    ├── NotFoundError            404  device or reading does not exist
    ├── ConflictError            409  device_id already registered
    ├── InvalidTransitionError   400  pump is already in the requested state
    ├── ValidationError          400  malformed or out-of-range input
    └── PersistenceError         500  the database failed
        └── ConstraintViolationError  409  unique / foreign key violation
"""


class MonitorError(Exception):
    """Base class for errors raised by the monitoring services."""

    status_code = 500
    title = "Internal server error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MonitorError):
    status_code = 404
    title = "Not found"


class ConflictError(MonitorError):
    status_code = 409
    title = "Conflict"


class InvalidTransitionError(MonitorError):
    """The pump is already in the state the action asks for."""

    status_code = 400
    title = "Invalid action"


class ValidationError(MonitorError):
    status_code = 400
    title = "Invalid data"


class PersistenceError(MonitorError):
    status_code = 500
    title = "Database error"


class ConstraintViolationError(PersistenceError):
    status_code = 409
    title = "Data conflict"
