"""
Decoder for datapoint payloads sent by the producer.

A payload is a JSON object::

    {"time": "1700000000", "value": [195, 245, 72, 64], "tags": ["ok"]}

``time`` is an integer count of seconds since the epoch (a JSON integer or a
string holding one), ``value`` carries the four little-endian bytes of an
IEEE-754 float32 and ``tags`` is an array of strings.

Every field goes through its own state: ``Pending`` until the key is seen,
then ``Decoded`` or ``Invalid``. Invalid fields raise ``DecodeError``; fields
left pending raise ``IncompleteRecordError``.
"""
import json
import re
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Tuple, TypeVar, Union

from datapoint_collector.core.errors import DecodeError, IncompleteRecordError

T = TypeVar("T")

MEASUREMENT_SIZE = 4

_INT_LITERAL = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Pending:
    """Field not present in the payload yet"""


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Field decoded successfully"""
    value: T


@dataclass(frozen=True)
class Invalid:
    """Field present but malformed"""
    reason: str


FieldState = Union[Pending, Decoded, Invalid]

PENDING = Pending()


@dataclass(frozen=True)
class CandidateRecord:
    """One datapoint fetched from the producer, not classified yet"""
    timestamp: datetime
    measurement: float
    tags: List[str] = field(default_factory=list)


def _raw(value: Any) -> str:
    text = json.dumps(value, default=str)
    return text if len(text) <= 64 else text[:61] + "..."


def decode_timestamp(raw: Any) -> FieldState:
    """Decode an integer epoch-seconds literal into an aware UTC datetime"""
    if isinstance(raw, bool):
        return Invalid(f"failed to parse time, raw: {_raw(raw)}")
    if not isinstance(raw, int) and not (isinstance(raw, str) and _INT_LITERAL.fullmatch(raw)):
        return Invalid(f"failed to parse time, raw: {_raw(raw)}")

    try:
        seconds = int(raw)
        return Decoded(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return Invalid(f"time out of range, raw: {_raw(raw)}")


def decode_measurement(raw: Any) -> FieldState:
    """Decode four little-endian bytes into a float32 value"""
    if not isinstance(raw, list):
        return Invalid(f"failed to decode value, expected an array of bytes, raw: {_raw(raw)}")

    for item in raw:
        if isinstance(item, bool) or not isinstance(item, int) or not 0 <= item <= 255:
            return Invalid(f"failed to decode value, {_raw(item)} is not a byte")

    if len(raw) != MEASUREMENT_SIZE:
        return Invalid(
            f"invalid data length for value, expected {MEASUREMENT_SIZE} bytes, got {len(raw)} bytes"
        )

    (value,) = struct.unpack("<f", bytes(raw))
    return Decoded(value)


def decode_tags(raw: Any) -> FieldState:
    """Decode an array of strings"""
    if not isinstance(raw, list) or not all(isinstance(tag, str) for tag in raw):
        return Invalid(f"failed to decode tags, expected an array of strings, raw: {_raw(raw)}")
    return Decoded(list(raw))


# (record field, payload key, decoder), in completeness-check order
_FIELDS = (
    ("timestamp", "time", decode_timestamp),
    ("measurement", "value", decode_measurement),
    ("tags", "tags", decode_tags),
)


def decode_fields(payload: Dict[str, Any]) -> Dict[str, FieldState]:
    """Run each field decoder over the payload object"""
    states: Dict[str, FieldState] = {}
    for name, key, decoder in _FIELDS:
        states[name] = decoder(payload[key]) if key in payload else PENDING
    return states


def check_complete(states: Dict[str, FieldState]) -> Tuple[datetime, float, List[str]]:
    """Return the decoded values, or raise for the first field that is not decoded"""
    for name, _, _ in _FIELDS:
        state = states.get(name, PENDING)
        if isinstance(state, Invalid):
            raise DecodeError(state.reason, field=name)

    values = []
    for name, _, _ in _FIELDS:
        state = states.get(name, PENDING)
        if not isinstance(state, Decoded):
            raise IncompleteRecordError(name)
        values.append(state.value)

    timestamp, measurement, tags = values
    return timestamp, measurement, tags


def decode(raw: Union[bytes, str]) -> CandidateRecord:
    """
    Decode a producer payload into a candidate record

    Raises:
        DecodeError: payload is not a JSON object or a field is malformed
        IncompleteRecordError: a required field is missing
    """
    try:
        payload = json.loads(raw)
    except ValueError as e:
        # JSONDecodeError, UnicodeDecodeError and oversized integer literals
        raise DecodeError(f"failed to decode payload: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError(f"payload must be a JSON object, got {type(payload).__name__}")

    timestamp, measurement, tags = check_complete(decode_fields(payload))
    return CandidateRecord(timestamp=timestamp, measurement=measurement, tags=tags)
