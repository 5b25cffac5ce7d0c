"""
Tests for SQLDataPointStorage against in-memory SQLite
"""
import math
import struct
from datetime import datetime, timezone

import pytest
from conftest import make_record
from datapoint_collector.core.database import build_engine, create_tables
from datapoint_collector.core.errors import RowDecodeError, StorageError
from datapoint_collector.models.datapoint import (AcceptedDataPoint,
                                                  RejectedDataPoint)
from datapoint_collector.services.admission import Admission, RejectReason
from datapoint_collector.services.datapoint_store import (DataPoint,
                                                          DataPointCursor,
                                                          SQLDataPointStorage)
from sqlalchemy import select
from sqlalchemy.orm import Session

BASE = 1700000000


def _at(seconds):
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _points(cursor):
    with cursor:
        return [cursor.decode(row) for row in cursor]


@pytest.fixture
def populated(storage, fixed_now):
    for offset, value in ((0, 1.0), (10, 2.0), (20, 3.0)):
        storage.write_accepted(make_record(BASE + offset, value=value), fixed_now)
    return storage


def test_query_returns_newest_first(populated):
    """Test rows come back ordered by time descending"""
    points = _points(populated.query())

    assert points == [
        DataPoint(time=_at(BASE + 20), value=3.0),
        DataPoint(time=_at(BASE + 10), value=2.0),
        DataPoint(time=_at(BASE), value=1.0),
    ]


def test_query_bounds_are_inclusive(populated):
    points = _points(populated.query(start=_at(BASE + 10), until=_at(BASE + 20)))
    assert [p.value for p in points] == [3.0, 2.0]


def test_query_start_only(populated):
    points = _points(populated.query(start=_at(BASE + 20)))
    assert [p.value for p in points] == [3.0]


def test_query_until_only(populated):
    points = _points(populated.query(until=_at(BASE)))
    assert [p.value for p in points] == [1.0]


def test_query_empty_range(populated):
    assert _points(populated.query(start=_at(BASE + 100))) == []


def test_query_converts_offset_bounds(populated):
    """Test bounds in a non-UTC offset select the same instant"""
    from datetime import timedelta
    plus_two = timezone(timedelta(hours=2))
    start = _at(BASE + 10).astimezone(plus_two)

    points = _points(populated.query(start=start))
    assert [p.value for p in points] == [3.0, 2.0]


def test_query_excludes_rejected(storage, fixed_now):
    storage.write_rejected(
        make_record(BASE, tags=["suspect"]),
        fixed_now,
        Admission(accepted=False, reason=RejectReason.BLOCKED_TAG, detail="suspect"),
    )
    assert _points(storage.query()) == []


def test_write_rejected_keeps_reason(storage, engine, fixed_now):
    """Test the rejected table records why the datapoint was dropped"""
    storage.write_rejected(
        make_record(BASE - 7200, value=5.0, tags=["ok"]),
        fixed_now,
        Admission(accepted=False, reason=RejectReason.STALE, detail="too old"),
    )

    with Session(engine) as session:
        row = session.execute(select(RejectedDataPoint)).scalar_one()
        assert row.reason == "stale"
        assert row.detail == "too old"
        assert row.value == 5.0
        assert row.tags == ["ok"]
        assert session.execute(select(AcceptedDataPoint)).first() is None


def test_write_accepted_keeps_tags(storage, engine, fixed_now):
    storage.write_accepted(make_record(BASE, tags=["a", "b"]), fixed_now)

    with Session(engine) as session:
        row = session.execute(select(AcceptedDataPoint)).scalar_one()
        assert row.tags == ["a", "b"]


def test_write_failure_raises_storage_error(storage, engine, fixed_now):
    AcceptedDataPoint.__table__.drop(engine)

    with pytest.raises(StorageError):
        storage.write_accepted(make_record(BASE), fixed_now)


def test_query_failure_raises_storage_error(storage, engine):
    AcceptedDataPoint.__table__.drop(engine)

    with pytest.raises(StorageError):
        storage.query()


def test_ping(storage):
    storage.ping()


def test_cursor_close_is_idempotent():
    closed = []
    cursor = DataPointCursor([{"time": _at(BASE), "value": 1.0}], on_close=lambda: closed.append(True))

    cursor.close()
    cursor.close()

    assert closed == [True]
    assert list(cursor) == []


@pytest.mark.parametrize("row", [
    {"time": "2023-11-14", "value": 1.0},
    {"time": None, "value": 1.0},
    {"time": _at(BASE), "value": None},
    {"time": _at(BASE), "value": math.nan},
    {"time": _at(BASE), "value": math.inf},
    {"time": _at(BASE), "value": "1.0"},
])
def test_cursor_decode_rejects_bad_rows(row):
    with pytest.raises(RowDecodeError):
        DataPointCursor.decode(row)


def test_cursor_decode_naive_time_is_utc():
    point = DataPointCursor.decode({"time": datetime(2023, 11, 14, 22, 13, 20), "value": 2})
    assert point == DataPoint(time=_at(BASE), value=2.0)


def test_nan_measurement_lands_in_both_destinations(storage, engine, fixed_now):
    """Test NaN values are stored (as NULL) and skipped when queried"""
    nan = struct.unpack("<f", bytes([0, 0, 192, 127]))[0]

    storage.write_accepted(make_record(BASE, value=nan), fixed_now)
    storage.write_rejected(
        make_record(BASE, value=nan, tags=["system"]),
        fixed_now,
        Admission(accepted=False, reason=RejectReason.BLOCKED_TAG, detail="system"),
    )

    with Session(engine) as session:
        assert session.execute(select(AcceptedDataPoint)).scalar_one().value is None
        assert session.execute(select(RejectedDataPoint)).scalar_one().value is None

    cursor = storage.query()
    with cursor:
        rows = list(cursor)
    assert len(rows) == 1
    with pytest.raises(RowDecodeError):
        DataPointCursor.decode(rows[0])


def test_file_database_uses_wal(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'dp.db'}")
    try:
        with engine.connect() as connection:
            assert connection.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"
    finally:
        engine.dispose()


def test_write_while_cursor_open(tmp_path, fixed_now):
    """Test collection writes go through while a query stream is half read"""
    engine = build_engine(f"sqlite:///{tmp_path / 'dp.db'}")
    create_tables(engine)
    storage = SQLDataPointStorage(engine, batch_size=5)
    try:
        for offset in range(50):
            storage.write_accepted(make_record(BASE + offset, value=float(offset)), fixed_now)

        with storage.query() as cursor:
            first = cursor.decode(next(cursor))
            storage.write_accepted(make_record(BASE + 100, value=100.0), fixed_now)
            remaining = sum(1 for _ in cursor)

        assert first.value == 49.0
        assert remaining == 49
        with storage.query(start=_at(BASE + 100)) as cursor:
            assert [cursor.decode(row).value for row in cursor] == [100.0]
    finally:
        engine.dispose()
