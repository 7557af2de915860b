"""
Database
========

Everything that touches the relational store lives here:

- the schema (devices, sensor_data, pump_data, pump_history)
- the `Database` handle: owns the SQLAlchemy engine, created at startup
  and disposed at shutdown
- the `Gateway`: what services use inside a transaction to run
  statements (`execute`, `query_one`, `query_many`)

Statements are SQLAlchemy Core constructs, not raw SQL strings, so the same
service code runs on SQLite (local development, tests) and PostgreSQL
(production).

Usage:
    database = Database("sqlite:///./data/monitoring.db")
    database.init()

    with database.transaction() as tx:
        row = tx.query_one(select(devices).where(devices.c.device_id == "ESP32_001"))

Any exception inside the `with` block rolls the whole transaction back.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from monitoring_api.errors import ConstraintViolationError, PersistenceError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time, timezone-aware UTC. The default clock of every service."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# SCHEMA
# =============================================================================

metadata = MetaData()

PUMP_STATES = ("active", "inactive")
PUMP_ACTIONS = ("activated", "deactivated")
TRIGGER_SOURCES = ("manual", "automatic", "schedule")


def _one_of(column: str, values: tuple) -> str:
    options = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({options})"


devices = Table(
    "devices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("device_id", String(50), unique=True, nullable=False),
    Column("name", String(100)),
    Column("location", String(200)),
    Column("description", String(500)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

sensor_data = Table(
    "sensor_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "device_id",
        String(50),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("umidade_solo", Integer, nullable=False),
    # Deprecated: newer firmware no longer sends temperature
    Column("temperatura", Float, nullable=True),
    Column("timestamp", BigInteger, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("idx_device_id", "device_id"),
    Index("idx_timestamp", "timestamp"),
    Index("idx_created_at", "created_at"),
)

# One row per device: a cache of the latest ledger entry
pump_data = Table(
    "pump_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "device_id",
        String(50),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    ),
    Column("status", String(10), nullable=False),
    Column("duration_seconds", Integer, nullable=False, default=0),
    Column("reason", String(200)),
    Column("triggered_by", String(10)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(_one_of("status", PUMP_STATES), name="ck_pump_data_status"),
    CheckConstraint(_one_of("triggered_by", TRIGGER_SOURCES), name="ck_pump_data_triggered_by"),
    CheckConstraint("duration_seconds >= 0", name="ck_pump_data_duration"),
)

pump_history = Table(
    "pump_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "device_id",
        String(50),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("action", String(12), nullable=False),
    Column("duration_seconds", Integer, nullable=False, default=0),
    Column("reason", String(200)),
    Column("triggered_by", String(10)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(_one_of("action", PUMP_ACTIONS), name="ck_pump_history_action"),
    CheckConstraint(_one_of("triggered_by", TRIGGER_SOURCES), name="ck_pump_history_triggered_by"),
    CheckConstraint("duration_seconds >= 0", name="ck_pump_history_duration"),
    Index("idx_pump_history_device_id", "device_id"),
    Index("idx_pump_history_created_at", "created_at"),
)


# =============================================================================
# GATEWAY
# =============================================================================

@dataclass
class ExecuteResult:
    """What a write returns: the new primary key (inserts only) and row count."""
    inserted_id: Optional[int]
    rows_affected: int


class Gateway:
    """
    Runs statements on one connection inside one transaction.

    Rows come back as plain dicts keyed by column label.
    Only `Database.transaction()` creates these.
    """

    def __init__(self, connection: Connection):
        self.connection = connection

    def _run(self, statement, params: Optional[dict]):
        if params:
            return self.connection.execute(statement, params)
        return self.connection.execute(statement)

    def execute(self, statement, params: Optional[dict] = None) -> ExecuteResult:
        result = self._run(statement, params)
        inserted_id = None
        if result.is_insert and result.inserted_primary_key:
            inserted_id = result.inserted_primary_key[0]
        return ExecuteResult(inserted_id=inserted_id, rows_affected=result.rowcount)

    def query_one(self, statement, params: Optional[dict] = None) -> Optional[dict]:
        row = self._run(statement, params).mappings().first()
        return dict(row) if row is not None else None

    def query_many(self, statement, params: Optional[dict] = None) -> list[dict]:
        rows = self._run(statement, params).mappings().all()
        return [dict(row) for row in rows]


# =============================================================================
# DATABASE HANDLE
# =============================================================================

class Database:
    """
    Owns the engine (and its connection pool).

    Lifecycle:
        init()  -> create engine, create missing tables
        close() -> dispose the pool

    One instance is created by the application lifespan and handed to each
    service's constructor.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: Optional[Engine] = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    def init(self):
        """Create the engine and any missing tables."""
        if self.engine is not None:
            return

        kwargs = {"echo": self.echo}
        if self.is_sqlite:
            # Needed for SQLite + FastAPI's threadpool
            kwargs["connect_args"] = {"check_same_thread": False}
            database_path = make_url(self.url).database
            if not database_path or database_path == ":memory:":
                kwargs["poolclass"] = StaticPool
            else:
                Path(database_path).parent.mkdir(parents=True, exist_ok=True)
        else:
            kwargs["pool_pre_ping"] = True

        engine = create_engine(self.url, **kwargs)
        if self.is_sqlite:
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)

        with _translate_errors():
            metadata.create_all(engine)

        self.engine = engine
        logger.info(f"Database ready ({engine.url.render_as_string(hide_password=True)})")

    def close(self):
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        logger.info("Database connections closed")

    @contextmanager
    def transaction(self) -> Iterator[Gateway]:
        """
        Open a transaction and yield a `Gateway` bound to it.

        Commits when the block exits normally, rolls back on any exception.
        SQLAlchemy errors are re-raised as `PersistenceError`.
        """
        if self.engine is None:
            raise PersistenceError("Database is not initialized")

        with _translate_errors():
            with self.engine.begin() as connection:
                yield Gateway(connection)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless this is on for the connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@contextmanager
def _translate_errors():
    try:
        yield
    except IntegrityError as e:
        logger.warning(f"Constraint violation: {e.orig}")
        raise ConstraintViolationError("Record conflicts with existing data") from e
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}", exc_info=True)
        raise PersistenceError("Database operation failed") from e
