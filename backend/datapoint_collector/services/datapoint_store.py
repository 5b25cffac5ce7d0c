"""
Storage port for datapoints and its SQLAlchemy implementation
"""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from datapoint_collector.core.errors import RowDecodeError, StorageError
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.wire_decoder import CandidateRecord
from datapoint_collector.models.datapoint import (AcceptedDataPoint,
                                                  RejectedDataPoint)
from datapoint_collector.services.admission import Admission
from datapoint_collector.utils.datetime_utils import ensure_utc


@dataclass(frozen=True)
class DataPoint:
    """One row of a query result"""
    time: datetime
    value: float


class DataPointCursor:
    """
    Forward-only, single-pass cursor over query rows

    Iterating yields raw row mappings; ``decode()`` turns one into a
    ``DataPoint`` and raises ``RowDecodeError`` for that row only. The cursor
    holds a storage connection until ``close()`` is called.
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]], on_close: Optional[Callable[[], None]] = None):
        self._rows = iter(rows)
        self._on_close = on_close
        self.closed = False

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return self

    def __next__(self) -> Mapping[str, Any]:
        if self.closed:
            raise StopIteration
        try:
            return next(self._rows)
        except SQLAlchemyError as e:
            raise StorageError(f"failed to advance query cursor: {e}") from e

    @staticmethod
    def decode(row: Mapping[str, Any]) -> DataPoint:
        t = row.get("time")
        if not isinstance(t, datetime):
            raise RowDecodeError(f"failed to parse time from row: {t!r}")

        value = row.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise RowDecodeError(f"failed to parse value from row: {value!r}")

        return DataPoint(time=ensure_utc(t), value=float(value))

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> "DataPointCursor":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class DataPointStorage(ABC):
    """Append + range query store with an accepted and a rejected table"""

    @abstractmethod
    def write_accepted(self, record: CandidateRecord, received_at: datetime) -> None:
        """Append a datapoint that passed admission"""

    @abstractmethod
    def write_rejected(self, record: CandidateRecord, received_at: datetime, admission: Admission) -> None:
        """Append a datapoint that failed admission"""

    @abstractmethod
    def query(self, start: Optional[datetime] = None, until: Optional[datetime] = None) -> DataPointCursor:
        """
        Accepted datapoints, newest first, within the inclusive [start, until] range

        Raises:
            StorageError: if the query cannot be executed
        """

    def ping(self) -> None:
        """Raise StorageError if the store is unreachable"""


class SQLDataPointStorage(DataPointStorage):
    """DataPointStorage on top of a SQLAlchemy engine"""

    def __init__(self, engine: Engine, batch_size: int = 500, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.batch_size = batch_size
        self.logger = LoggingConfig.get_component_logger(__name__, "DataPointStorage", logger=logger)

    def _write(self, row):
        table = row.__tablename__
        try:
            with Session(self.engine) as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            raise StorageError(f"failed to write datapoint to {table}: {e}") from e

    def write_accepted(self, record: CandidateRecord, received_at: datetime) -> None:
        self._write(AcceptedDataPoint(
            time=ensure_utc(record.timestamp),
            value=record.measurement,
            tags=list(record.tags),
            received_at=ensure_utc(received_at),
        ))

    def write_rejected(self, record: CandidateRecord, received_at: datetime, admission: Admission) -> None:
        self._write(RejectedDataPoint(
            time=ensure_utc(record.timestamp),
            value=record.measurement,
            tags=list(record.tags),
            received_at=ensure_utc(received_at),
            reason=admission.reason.value if admission.reason else "unknown",
            detail=(admission.detail or "")[:255] or None,
        ))

    def query(self, start: Optional[datetime] = None, until: Optional[datetime] = None) -> DataPointCursor:
        stmt = select(AcceptedDataPoint.time, AcceptedDataPoint.value)
        if start is not None:
            stmt = stmt.where(AcceptedDataPoint.time >= ensure_utc(start))
        if until is not None:
            stmt = stmt.where(AcceptedDataPoint.time <= ensure_utc(until))
        stmt = stmt.order_by(AcceptedDataPoint.time.desc())

        try:
            connection = self.engine.connect()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to execute query: {e}") from e

        try:
            result = connection.execution_options(
                stream_results=True, yield_per=self.batch_size
            ).execute(stmt)
        except SQLAlchemyError as e:
            connection.close()
            raise StorageError(f"failed to execute query: {e}") from e

        def _close():
            try:
                result.close()
            finally:
                connection.close()

        return DataPointCursor(result.mappings(), on_close=_close)

    def ping(self) -> None:
        try:
            with self.engine.connect() as connection:
                connection.exec_driver_sql("SELECT 1")
        except SQLAlchemyError as e:
            raise StorageError(f"database unreachable: {e}") from e
