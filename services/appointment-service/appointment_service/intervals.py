"""Half-open time ranges and the overlap predicate every other module relies on."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import InvalidArgument


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise InvalidArgument("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc)


def is_minute_precise(dt: datetime) -> bool:
    return dt.second == 0 and dt.microsecond == 0


@dataclass(frozen=True, order=True)
class TimeInterval:
    """``[start, end)`` with ``end > start``; both ends timezone-aware."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise InvalidArgument("interval bounds must be timezone-aware")
        if self.end <= self.start:
            raise InvalidArgument("interval end must be after start")

    @classmethod
    def of(cls, start: datetime, duration: timedelta) -> TimeInterval:
        return cls(start, start + duration)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def normalized(self) -> TimeInterval:
        return TimeInterval(to_utc(self.start), to_utc(self.end))

    def overlaps(self, other: TimeInterval) -> bool:
        return overlaps(self, other)

    def contains(self, other: TimeInterval) -> bool:
        return contains(self, other)


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    # touching ranges share no instant
    return a.start < b.end and b.start < a.end


def contains(outer: TimeInterval, inner: TimeInterval) -> bool:
    return inner.start >= outer.start and inner.end <= outer.end
