"""
ESP32 Monitoring API - Backend
==============================
FastAPI application for soil monitoring and irrigation pump control.

ARCHITECTURE:
    ESP32 boards in the field POST soil readings to this backend. The mobile
    app reads the readings, manages devices and switches each device's
    water pump on and off.

    [ESP32 boards] --POST /api/sensors--> [This Backend] <--HTTPS-- [Mobile App]
                                                |
                                                v
                                  [SQLite (dev) / PostgreSQL (prod)]

HOW TO RUN:
    # Install dependencies
    pip install -e ".[test]"

    # Copy environment config
    cp backend/env.example.txt .env
    # Edit .env with your settings

    # Run the server
    uvicorn monitoring_api.main:app --reload --port 8000

API DOCUMENTATION:
    After starting the server, visit:
    - Swagger UI: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from monitoring_api import __version__
from monitoring_api.database import Database
from monitoring_api.errors import MonitorError
from monitoring_api.routers import devices_router, pump_router, sensors_router
from monitoring_api.services import DeviceRegistry, PumpLedger, PumpTracker, SensorIngestion


# Load environment variables from .env file
load_dotenv()


# =============================================================================
# CONFIGURATION
# =============================================================================

def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Application configuration loaded from environment variables.

    Environment Variables:
        DATABASE_URL: SQLAlchemy URL (default: SQLite file in ./data)
        ALLOWED_ORIGINS: Comma-separated CORS origins
        FRONTEND_URL: URL of the frontend, always allowed for CORS
        DEBUG: Include internal error messages in 500 responses
        LOG_LEVEL: DEBUG, INFO, WARNING... (default: INFO)
        SQL_ECHO: Log every SQL statement

    Defaults are set for local development.
    """

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/monitoring.db")

    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Allowed CORS origins
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            "ALLOWED_ORIGINS",
            "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ] + [FRONTEND_URL]

    DEBUG = _env_flag("DEBUG")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    SQL_ECHO = _env_flag("SQL_ECHO")


# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='[%(asctime)s] %(message)s',
    datefmt='%H:%M:%S',
    handlers=[logging.StreamHandler(sys.stderr)]
)
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    STARTUP:
        1. Open the database and create missing tables
        2. Build the services around that one database handle
        3. Park them on app.state for the routers

    SHUTDOWN:
        1. Close all database connections
    """
    # ========== STARTUP ==========
    print("=" * 60)
    print("🚀 ESP32 MONITORING API - Starting Backend")
    print("=" * 60)

    database = Database(Config.DATABASE_URL, echo=Config.SQL_ECHO)
    database.init()

    registry = DeviceRegistry(database)
    app.state.database = database
    app.state.device_registry = registry
    app.state.sensor_ingestion = SensorIngestion(database, registry)
    app.state.pump_tracker = PumpTracker(database, registry, ledger=PumpLedger())
    app.state.started_at = time.monotonic()

    print(f"✅ Services initialized")
    print(f"   Database: {database.engine.url.render_as_string(hide_password=True)}")
    print(f"   CORS origins: {len(Config.CORS_ORIGINS)} configured")
    print(f"   Debug errors: {'on' if Config.DEBUG else 'off'}")
    print()
    print("📖 API Documentation: http://localhost:8000/docs")
    print("=" * 60)

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    print()
    print("🛑 Shutting down...")
    database.close()
    print("✅ Shutdown complete")


# =============================================================================
# CREATE FASTAPI APPLICATION
# =============================================================================

app = FastAPI(
    title="ESP32 Monitoring API",
    description="""
## Overview

Backend API for ESP32 soil-humidity sensors and their irrigation pumps.

## How It Works

1. **Boards report** - each ESP32 POSTs soil humidity to `/api/sensors`
   (unknown boards are registered automatically)
2. **App reads** - readings can be filtered by device and date, and paged
3. **Pump control** - activate/deactivate a device's pump; every change is
   logged with who triggered it and how long the pump ran

## Pump States

| From | Action | To | Recorded duration |
|------|--------|----|-------------------|
| inactive | activate | active | 0 |
| active | deactivate | inactive | seconds the pump ran |

Asking for the state the pump is already in returns **400**.
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(MonitorError)
async def handle_monitor_error(request: Request, exc: MonitorError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.title, "detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid data",
            "detail": "Check the required fields and formats",
            "validation_errors": errors,
        },
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if Config.DEBUG else "Something went wrong",
        },
    )


# =============================================================================
# INCLUDE ROUTERS
# =============================================================================

app.include_router(sensors_router)
app.include_router(devices_router)
app.include_router(pump_router)


# =============================================================================
# ROOT ENDPOINTS
# =============================================================================

@app.get(
    "/",
    summary="API Information",
    description="Get basic API information and available endpoints."
)
async def root():
    return {
        "name": "ESP32 Monitoring API",
        "version": __version__,
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc",
            "openapi": "/openapi.json"
        },
        "endpoints": {
            "sensors": "/api/sensors",
            "sensor_count": "/api/sensors/count",
            "devices": "/api/devices",
            "pump": "/api/pump/{device_id}/status",
            "health": "/api/health"
        }
    }


@app.get(
    "/api/health",
    summary="Health Check",
    description="Check if the backend is running."
)
async def health(request: Request):
    """Health check endpoint."""
    started_at = getattr(request.app.state, "started_at", None)
    uptime = time.monotonic() - started_at if started_at is not None else 0.0
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(uptime, 1),
        "version": __version__,
    }
