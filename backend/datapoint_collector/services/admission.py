"""
Admission policy deciding whether a fetched datapoint is accepted or rejected
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple

from datapoint_collector.core.wire_decoder import CandidateRecord

DEFAULT_MAX_AGE = timedelta(hours=1)
DEFAULT_BLOCKED_TAGS = ("system", "suspect")


class RejectReason(str, Enum):
    """Why a datapoint went to the rejected table"""
    STALE = "stale"
    BLOCKED_TAG = "blocked-tag"


@dataclass(frozen=True)
class Admission:
    """Outcome of classifying one datapoint"""
    accepted: bool
    reason: Optional[RejectReason] = None
    detail: Optional[str] = None

    @property
    def destination(self) -> str:
        return "accepted" if self.accepted else "rejected"


ACCEPT = Admission(accepted=True)


@dataclass(frozen=True)
class AdmissionPolicy:
    """
    Age and tag based admission

    Checks run in order and the first failing one decides:

    1. stale: timestamp strictly older than ``now - max_age``
    2. blocked-tag: a tag equals (case-sensitively) one of ``blocked_tags``;
       tags are scanned in payload order and the first hit is reported
    """
    max_age: timedelta = DEFAULT_MAX_AGE
    blocked_tags: Tuple[str, ...] = field(default=DEFAULT_BLOCKED_TAGS)

    @classmethod
    def from_settings(cls, max_age_seconds: int, blocked_tags: Iterable[str]) -> "AdmissionPolicy":
        return cls(max_age=timedelta(seconds=max_age_seconds), blocked_tags=tuple(blocked_tags))

    def classify(self, record: CandidateRecord, now: datetime) -> Admission:
        if record.timestamp < now - self.max_age:
            return Admission(
                accepted=False,
                reason=RejectReason.STALE,
                detail=f"timestamp {record.timestamp.isoformat()} older than {self.max_age}",
            )

        for tag in record.tags:
            if tag in self.blocked_tags:
                return Admission(accepted=False, reason=RejectReason.BLOCKED_TAG, detail=tag)

        return ACCEPT


def classify(record: CandidateRecord, now: datetime) -> Admission:
    """Classify with the default policy"""
    return AdmissionPolicy().classify(record, now)
