from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum

from .errors import InvalidArgument
from .intervals import TimeInterval

ROLE_PROVIDER = "provider"
ROLE_REQUESTER = "requester"
ALLOWED_ROLES = {ROLE_PROVIDER, ROLE_REQUESTER}


class BookingStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    name: str
    email: str
    role: str


@dataclass(frozen=True)
class AvailabilityRule:
    """A recurring weekly window, e.g. Mondays 09:00-12:00."""

    provider_id: str
    day_of_week: int
    start_time: time
    end_time: time

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise InvalidArgument("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        if self.start_time >= self.end_time:
            raise InvalidArgument("rule start_time must be before end_time")


@dataclass
class Booking:
    booking_id: str
    provider_id: str
    requester_id: str
    interval: TimeInterval
    status: BookingStatus = BookingStatus.SCHEDULED
    reminder_sent: bool = False
    note: str | None = None
    created_at: datetime | None = field(default=None, compare=False)

    @property
    def is_scheduled(self) -> bool:
        return self.status == BookingStatus.SCHEDULED

    def parties(self) -> tuple[str, str]:
        return self.provider_id, self.requester_id
