"""
Error taxonomy of the collection and query pipelines
"""
from typing import Optional


class CollectorError(Exception):
    """Base class for all datapoint collector errors"""
    pass


class DecodeError(CollectorError):
    """Producer payload is malformed"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class IncompleteRecordError(CollectorError):
    """Payload decoded but a required field is missing"""

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"{field} field is not decoded")
        self.field = field


class TransportError(CollectorError):
    """Network failure, timeout or unexpected answer from the producer"""
    pass


class UnexpectedStatusError(TransportError):
    """Producer answered with a non-2xx status code"""

    def __init__(self, status_code: int):
        super().__init__(f"unexpected status code: {status_code}")
        self.status_code = status_code


class StorageError(CollectorError):
    """Write or query against the time-series store failed"""
    pass


class RowDecodeError(StorageError):
    """A single query row could not be turned into a datapoint"""
    pass


class RangeValidationError(CollectorError):
    """Client supplied a malformed time range"""
    pass
