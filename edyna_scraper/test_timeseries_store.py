"""Tests for the idempotent, monotonic-overwrite reading store (SQLite backed)."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, ProgrammingError

from edyna_scraper.conftest import make_batch
from edyna_scraper.io.timeseries_store import IngestionStore, readings
from edyna_scraper.scraper.models import HOUR_LABELS


def _rows(store: IngestionStore):
    with store.engine.connect() as conn:
        return conn.execute(select(readings).order_by(readings.c.timestamp, readings.c.hour)).mappings().all()


def _row_count(store: IngestionStore) -> int:
    with store.engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(readings)).scalar_one()


def _full_day(value: float):
    return {label: value for label in HOUR_LABELS}


def test_initialize_schema_is_idempotent(store):
    store.initialize_schema()
    store.initialize_schema()
    assert _row_count(store) == 0


class _PostgresWithoutTimescale:
    """Real SQLite engine for DDL, reporting a postgresql dialect whose
    hypertable call fails with the given driver error."""

    def __init__(self, engine, driver_error):
        self._engine = engine
        self._driver_error = driver_error
        self.dialect = SimpleNamespace(name="postgresql")
        self.statements = []

    def __getattr__(self, name):
        return getattr(self._engine, name)

    @contextmanager
    def begin(self):
        yield self

    def execute(self, statement, params=None):
        self.statements.append(str(statement))
        raise ProgrammingError(str(statement), params, self._driver_error)


def _store_on_postgres_without_timescale(tmp_path, driver_error):
    store = IngestionStore(f"sqlite:///{tmp_path / 'pg.db'}")
    store._engine = _PostgresWithoutTimescale(store.engine, driver_error)
    return store


def test_missing_timescale_extension_is_not_fatal(tmp_path):
    error = Exception("function create_hypertable(unknown, unknown) does not exist")
    store = _store_on_postgres_without_timescale(tmp_path, error)

    store.initialize_schema()

    assert any("create_hypertable" in statement for statement in store.engine.statements)
    assert _row_count(store) == 0
    store.close()


def test_other_partitioning_errors_propagate(tmp_path):
    error = Exception("permission denied for schema public")
    store = _store_on_postgres_without_timescale(tmp_path, error)

    with pytest.raises(ProgrammingError, match="permission denied"):
        store.initialize_schema()
    store.close()


def test_first_batch_inserts_every_non_null_slot(store):
    batch = make_batch({"01/01/2025": _full_day(1.0)})

    result = store.upsert_batch(batch)

    assert (result.inserted, result.updated) == (24, 0)
    rows = _rows(store)
    assert len(rows) == 24
    assert rows[0]["timestamp"] == date(2025, 1, 1)
    assert [row["hour"] for row in rows] == list(range(24))
    assert rows[5]["month_name"] == "Gennaio"
    assert rows[5]["source_date"] == "01/01/2025"


def test_reapplying_same_batch_changes_nothing(store):
    batch = make_batch({"01/01/2025": _full_day(1.0), "2025-01-02": {"00:00": 2.0}})
    store.upsert_batch(batch)
    before = _rows(store)

    result = store.upsert_batch(batch)

    assert (result.inserted, result.updated) == (0, 0)
    assert _rows(store) == before


def test_null_slots_are_not_stored(store):
    result = store.upsert_batch(make_batch({"01/01/2025": {"03:00": 0.0, "04:00": None}}))

    assert result.inserted == 1
    assert _rows(store)[0]["kwh"] == 0.0


@pytest.mark.parametrize(
    "new_value, expected_kwh, updated",
    [
        (5.0005, 5.0, 0),
        (5.0, 5.0, 0),
        (4.0, 5.0, 0),
        (6.0, 6.0, 1),
    ],
)
def test_monotonic_overwrite(store, new_value, expected_kwh, updated):
    store.upsert_batch(make_batch({"01/01/2025": {"10:00": 5.0}}))
    original = _rows(store)[0]

    result = store.upsert_batch(make_batch({"01/01/2025": {"10:00": new_value}}, month="Gen."))

    row = _rows(store)[0]
    assert result.updated == updated
    assert result.inserted == 0
    assert row["kwh"] == pytest.approx(expected_kwh)
    if updated:
        assert row["month_name"] == "Gen."
    else:
        assert row["updated_at"] == original["updated_at"]
        assert row["month_name"] == "Gennaio"


def test_same_day_in_two_date_formats_is_one_slot(store):
    store.upsert_batch(make_batch({"01/11/2025": {"08:00": 1.0}}))
    result = store.upsert_batch(make_batch({"2025-11-01": {"08:00": 1.0}}))

    assert (result.inserted, result.updated) == (0, 0)
    assert _row_count(store) == 1


def test_unparsable_date_skips_only_that_day(store):
    batch = make_batch({"not-a-date": _full_day(1.0), "02/01/2025": {"00:00": 1.5}})

    result = store.upsert_batch(batch)

    assert result.skipped_days == 1
    assert result.inserted == 1
    assert _rows(store)[0]["timestamp"] == date(2025, 1, 2)


def test_unexpected_error_rolls_back_whole_batch(store, monkeypatch):
    original = IngestionStore._apply_reading
    calls = {"count": 0}

    def flaky(self, *args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 3:
            raise OperationalError("INSERT", {}, Exception("server closed the connection"))
        return original(self, *args, **kwargs)

    monkeypatch.setattr(IngestionStore, "_apply_reading", flaky)

    with pytest.raises(OperationalError):
        store.upsert_batch(make_batch({"01/01/2025": _full_day(1.0)}))

    assert _row_count(store) == 0


def test_close_is_idempotent_and_pool_is_recreated(store):
    store.upsert_batch(make_batch({"01/01/2025": {"00:00": 1.0}}))
    store.close()
    store.close()

    assert _row_count(store) == 1


def test_context_manager_closes(tmp_path):
    with IngestionStore(f"sqlite:///{tmp_path / 'cm.db'}") as store:
        store.initialize_schema()
        store.upsert_batch(make_batch({"01/01/2025": {"00:00": 1.0}}))
        assert store._engine is not None
    assert store._engine is None
