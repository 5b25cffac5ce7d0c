"""
Datetime utilities
Provides timezone-aware helpers and RFC 3339 parsing/formatting
"""
import re
from datetime import datetime, timezone
from typing import Optional

# date "T" time, optional fraction, mandatory offset ("Z" or +hh:mm)
_RFC3339 = re.compile(
    r"\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})"
)


def utc_now() -> datetime:
    """
    Get current UTC time (replacement for deprecated datetime.utcnow())

    Returns:
        datetime: Current UTC time with timezone awareness
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC

    Naive datetimes (as returned by SQLite) are taken to already be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp such as ``2024-01-02T03:04:05Z``

    Raises:
        ValueError: if the string is not RFC 3339
    """
    if not _RFC3339.fullmatch(value):
        raise ValueError(f'cannot parse "{value}" as RFC 3339')

    normalized = value.upper().replace("Z", "+00:00")
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    match = re.search(r"\.(\d+)", normalized)
    if match:
        digits = (match.group(1) + "000000")[:6]
        normalized = normalized[:match.start(1)] + digits + normalized[match.end(1):]
    try:
        return datetime.fromisoformat(normalized)
    except ValueError as e:
        raise ValueError(f'cannot parse "{value}" as RFC 3339: {e}') from e


def parse_optional_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse an optional RFC 3339 timestamp, passing None through"""
    if value is None:
        return None
    return parse_rfc3339(value)


def format_rfc3339(value: datetime) -> str:
    """
    Format a datetime as RFC 3339 in UTC with second precision

    Example:
        >>> format_rfc3339(datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc))
        '2023-11-14T22:13:20Z'
    """
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
