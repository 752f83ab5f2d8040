"""TimescaleDB/PostgreSQL sink for hourly consumption readings.

Rows are keyed by (timestamp, hour). A stored reading is only ever replaced
by a strictly larger one (beyond KWH_UPDATE_EPSILON): the portal view
accumulates, so an equal or lower re-read of a slot is considered stale.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Double,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    select,
    text,
)
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from edyna_scraper import config
from edyna_scraper.config import DatabaseSettings
from edyna_scraper.scraper import parse_utils
from edyna_scraper.scraper.models import DailyBatch, DateParseError, UpsertResult

logger = logging.getLogger(__name__)

metadata = MetaData()

readings = Table(
    config.READINGS_TABLE,
    metadata,
    Column("timestamp", Date, primary_key=True, nullable=False),
    Column("hour", Integer, primary_key=True, nullable=False),
    Column("kwh", Double, nullable=False),
    Column("month_name", Text, nullable=True),
    Column("source_date", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")),
    CheckConstraint("hour >= 0 AND hour < 24", name="ck_daily_hourly_hour_range"),
)

Index(config.READINGS_TIMESTAMP_INDEX, readings.c.timestamp.desc())

_MISSING_HYPERTABLE_MARKERS = ("create_hypertable", "does not exist")


class IngestionStore:
    """Owns the connection pool and applies daily batches transactionally.

    The engine (and its pool) is created on first use and can be reused for
    any number of sequential batches until close() is called.
    """

    def __init__(
        self,
        url: Union[str, URL],
        *,
        epsilon: float = config.KWH_UPDATE_EPSILON,
        **engine_options,
    ):
        self.url = url
        self.epsilon = epsilon
        self._engine_options = engine_options
        self._engine: Optional[Engine] = None

    @classmethod
    def from_settings(cls, settings: DatabaseSettings, **engine_options) -> "IngestionStore":
        return cls(settings.url(), **engine_options)

    def __enter__(self) -> "IngestionStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self.url, pool_pre_ping=True, **self._engine_options)
        return self._engine

    def initialize_schema(self) -> None:
        """Create table, index and (when available) the hypertable. Idempotent."""
        logger.info("Creating schema if not exists...")
        metadata.create_all(self.engine)
        self._enable_time_partitioning()
        logger.info("Schema initialized successfully")

    def _enable_time_partitioning(self) -> None:
        if self.engine.dialect.name != "postgresql":
            logger.info(f"{self.engine.dialect.name} has no hypertables, using regular table")
            return
        statement = text(
            "SELECT create_hypertable(:table_name, 'timestamp', "
            "if_not_exists => TRUE, migrate_data => TRUE)"
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(statement, {"table_name": config.READINGS_TABLE})
        except DBAPIError as exc:
            message = str(exc.orig or exc)
            if not any(marker in message for marker in _MISSING_HYPERTABLE_MARKERS):
                raise
            logger.info("TimescaleDB extension not available, using regular table")

    def upsert_batch(self, batch: DailyBatch) -> UpsertResult:
        """Apply every non-null hourly reading of the batch in one transaction."""
        result = UpsertResult()
        try:
            with self.engine.begin() as conn:
                for day in batch.days:
                    day_date = parse_utils.parse_source_date(day.date)
                    if isinstance(day_date, DateParseError):
                        logger.warning(f"Skipping invalid date {day.date!r}: {day_date.reason}")
                        result.skipped_days += 1
                        continue

                    for label, kwh in day.hours.items():
                        if kwh is None:
                            continue
                        hour = parse_utils.hour_from_label(label)
                        if hour is None:
                            logger.warning(f"Skipping unknown hour label {label!r} on {day.date}")
                            continue
                        self._apply_reading(conn, result, day_date, hour, kwh, batch.month, day.date)
        except SQLAlchemyError as exc:
            logger.error(f"Error saving daily hourly data, batch rolled back: {exc}")
            raise

        logger.info(
            f"Saved daily hourly data: {result.inserted} inserted, {result.updated} updated"
        )
        return result

    def _apply_reading(
        self,
        conn: Connection,
        result: UpsertResult,
        day_date,
        hour: int,
        kwh: float,
        month_name: Optional[str],
        source_date: str,
    ) -> None:
        key = (readings.c.timestamp == day_date) & (readings.c.hour == hour)
        existing = conn.execute(select(readings.c.kwh).where(key)).scalar_one_or_none()
        now = datetime.now(timezone.utc)

        if existing is None:
            conn.execute(
                readings.insert().values(
                    timestamp=day_date,
                    hour=hour,
                    kwh=kwh,
                    month_name=month_name,
                    source_date=source_date,
                    created_at=now,
                    updated_at=now,
                )
            )
            result.inserted += 1
            return

        if kwh - existing > self.epsilon:
            conn.execute(
                readings.update()
                .where(key)
                .values(kwh=kwh, month_name=month_name, source_date=source_date, updated_at=now)
            )
            result.updated += 1
            logger.info(f"Updated {day_date.isoformat()} hour {hour}: {existing} -> {kwh}")

    def close(self) -> None:
        """Dispose of the pool. Safe to call repeatedly."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Database connection closed")
