"""
Dependency Injection
====================

The services are built once, when the app starts (see `main.lifespan`),
and parked on `app.state`. These functions hand them to the endpoints:

    @router.get("/{device_id}/status")
    def get_status(device_id: str, tracker = Depends(get_pump_tracker)):
        ...
"""

from fastapi import HTTPException, Request

from monitoring_api.services import DeviceRegistry, PumpTracker, SensorIngestion


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=500, detail="Server not fully started yet")
    return service


def get_device_registry(request: Request) -> DeviceRegistry:
    return _service(request, "device_registry")


def get_sensor_ingestion(request: Request) -> SensorIngestion:
    return _service(request, "sensor_ingestion")


def get_pump_tracker(request: Request) -> PumpTracker:
    return _service(request, "pump_tracker")
