"""
Streaming JSON array encoder for query results

Rows are serialized one at a time as the cursor advances, so a response never
holds the full result set in memory::

    [{"time":"2023-11-14T22:13:20Z","value":3.14},{"time":...}]
"""
import json
import logging
import struct
from contextlib import closing
from typing import BinaryIO, Iterator, Optional

from datapoint_collector.core.errors import RowDecodeError, StorageError
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.metrics import (query_rows_skipped_total,
                                              query_rows_streamed_total)
from datapoint_collector.services.datapoint_store import (DataPoint,
                                                          DataPointCursor)
from datapoint_collector.utils.datetime_utils import format_rfc3339

ARRAY_OPEN = b"["
ARRAY_CLOSE = b"]"
SEPARATOR = b","

_default_logger = LoggingConfig.get_logger(__name__)


def float32_value(value: float) -> float:
    """
    Shortest decimal that maps back to the same float32

    Stored values are float32 widened to float64, e.g. 3.14 comes back as
    3.140000104904175; this returns 3.14 again.
    """
    try:
        (target,) = struct.unpack("<f", struct.pack("<f", value))
    except (OverflowError, struct.error):
        return value
    for digits in range(1, 10):
        candidate = float(f"{target:.{digits}g}")
        if struct.unpack("<f", struct.pack("<f", candidate))[0] == target:
            return candidate
    return target


def encode_datapoint(point: DataPoint) -> bytes:
    """Serialize one datapoint as a compact JSON object"""
    return json.dumps(
        {"time": format_rfc3339(point.time), "value": float32_value(point.value)},
        separators=(",", ":"),
        allow_nan=False,
    ).encode("utf-8")


def iter_json_array(cursor: DataPointCursor, logger: Optional[logging.Logger] = None) -> Iterator[bytes]:
    """
    Yield the chunks of a JSON array built from the cursor rows

    Rows failing to decode are logged and skipped. If the cursor itself fails
    the array is left unterminated. The cursor is closed when the generator
    finishes or is closed.
    """
    log = logger or _default_logger
    written = 0
    try:
        yield ARRAY_OPEN
        for index, row in enumerate(cursor):
            try:
                item = encode_datapoint(cursor.decode(row))
            except (RowDecodeError, ValueError) as e:
                query_rows_skipped_total.inc()
                log.error("Error retrieving item", extra={"iter_counter": index, "error": str(e)})
                continue

            yield SEPARATOR + item if written else item
            written += 1
            query_rows_streamed_total.inc()
        yield ARRAY_CLOSE
    except StorageError as e:
        log.error("Error advancing query cursor", extra={"rows_written": written, "error": str(e)})
    finally:
        cursor.close()


def stream_json_array(cursor: DataPointCursor, writer: BinaryIO, logger: Optional[logging.Logger] = None) -> int:
    """
    Write the cursor rows to ``writer`` as a JSON array

    Returns the number of rows written. A failing write aborts the stream
    and propagates, leaving the output truncated.
    """
    written = 0
    with closing(iter_json_array(cursor, logger=logger)) as chunks:
        for chunk in chunks:
            writer.write(chunk)
            if chunk not in (ARRAY_OPEN, ARRAY_CLOSE):
                written += 1
    return written
