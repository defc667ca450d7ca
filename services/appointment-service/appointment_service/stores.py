"""Storage contracts the engine runs against.

The engine owns the rules for valid booking states; these interfaces own the
data. ``sql_stores`` holds the SQLAlchemy implementation, tests use in-memory
fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Sequence

from .domain import AvailabilityRule, Booking, BookingStatus, UserRecord
from .intervals import TimeInterval


class IdentityLookup(ABC):

    @abstractmethod
    async def get_user(self, user_id: str) -> UserRecord | None:
        """Return the user, or None when the id is unknown."""


class RuleStore(ABC):

    @abstractmethod
    async def list_rules(self, provider_id: str, day_of_week: int) -> Sequence[AvailabilityRule]:
        """Rules of one provider for one weekday (0 = Sunday). Unknown provider -> empty."""

    @abstractmethod
    async def list_all_rules(self, provider_id: str) -> Sequence[AvailabilityRule]:
        """Every rule of the provider, ordered by weekday then start time."""

    @abstractmethod
    async def replace_rules(self, provider_id: str, rules: Sequence[AvailabilityRule]) -> None:
        """Atomically swap the provider's weekly template for ``rules``."""


class BookingStore(ABC):

    @abstractmethod
    async def get(self, booking_id: str) -> Booking | None:
        """Fetch a single booking by id."""

    @abstractmethod
    async def list_scheduled(self, provider_id: str, date_range: TimeInterval) -> Sequence[Booking]:
        """SCHEDULED bookings of the provider whose interval overlaps ``date_range``."""

    @abstractmethod
    async def insert_scheduled(self, booking: Booking) -> None:
        """Persist a new SCHEDULED booking.

        Must refuse the insert with ``StoreConflict`` when another SCHEDULED
        booking of the same provider overlaps it, including one committed by a
        concurrent caller after the engine's own check. May raise
        ``TransientStorageError`` for retryable failures.
        """

    @abstractmethod
    async def update_status(
        self,
        booking_id: str,
        new_status: BookingStatus,
        expected: BookingStatus | None = None,
    ) -> None:
        """Set the status; with ``expected`` the write is conditional.

        Raises ``StoreConflict`` when the current status is not ``expected``.
        """

    @abstractmethod
    async def mark_reminded(self, booking_id: str) -> None:
        """Set ``reminder_sent``; unknown ids are a no-op."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> Sequence[Booking]:
        """Bookings where the user is provider or requester, ordered by start."""

    @abstractmethod
    async def list_due_reminders(self, start_from: datetime, start_to: datetime) -> Sequence[Booking]:
        """SCHEDULED, not yet reminded, ``start_from <= start <= start_to``."""
