"""Booking engine: free-slot queries, reservation and cancellation.

The one invariant this module exists for: a provider never has two SCHEDULED
bookings whose intervals overlap. ``book`` checks the live booking set and the
store re-checks inside its insert transaction, so a slot rendered as free that
loses a race comes back as ``SlotUnavailable`` instead of a double booking.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Sequence

from . import config
from .availability import AvailabilityResolver
from .conflicts import filter_free, has_conflict
from .domain import Booking, BookingStatus
from .errors import (
    InvalidArgument,
    InvalidState,
    NotFound,
    SlotUnavailable,
    StorageFailure,
    StoreConflict,
    TransientStorageError,
)
from .intervals import TimeInterval, contains, is_minute_precise, to_utc, utc_now
from .notifications import NotificationSink, cancelled_message, notify_all, scheduled_message
from .rbac import require_canceller, require_provider, require_requester, require_viewer
from .stores import BookingStore, IdentityLookup, RuleStore

log = logging.getLogger(__name__)


class BookingEngine:

    def __init__(
        self,
        identity: IdentityLookup,
        rules: RuleStore,
        bookings: BookingStore,
        notifications: NotificationSink,
        clock: Callable[[], datetime] = utc_now,
        resolver: AvailabilityResolver | None = None,
        commit_retries: int | None = None,
        enforce_availability_window: bool | None = None,
    ):
        self.identity = identity
        self.rules = rules
        self.bookings = bookings
        self.notifications = notifications
        self.clock = clock
        self.resolver = resolver or AvailabilityResolver(rules, clock=clock)
        self.commit_retries = config.BOOKING_COMMIT_RETRIES if commit_retries is None else commit_retries
        if enforce_availability_window is None:
            enforce_availability_window = config.ENFORCE_AVAILABILITY_WINDOW
        self.enforce_availability_window = enforce_availability_window

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def free_slots(
        self,
        provider_id: str,
        day: date,
        slot_duration: timedelta | int,
    ) -> list[TimeInterval]:
        candidates = await self.resolver.resolve(provider_id, day, slot_duration)
        span = candidates.span()
        if span is None:
            return []
        existing = await self.bookings.list_scheduled(provider_id, span)
        return list(filter_free(candidates, existing, provider_id))

    async def get_booking(self, booking_id: str, actor_id: str) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        require_viewer(actor_id, booking)
        return booking

    async def list_bookings(self, user_id: str) -> Sequence[Booking]:
        if await self.identity.get_user(user_id) is None:
            raise NotFound(f"User {user_id} not found")
        return await self.bookings.list_for_user(user_id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def book(
        self,
        provider_id: str,
        requester_id: str,
        interval: TimeInterval,
        note: str | None = None,
    ) -> Booking:
        if not provider_id or not requester_id:
            raise InvalidArgument("provider_id and requester_id are required")

        interval = interval.normalized()
        if not (is_minute_precise(interval.start) and is_minute_precise(interval.end)):
            raise InvalidArgument("booking times must be whole minutes")

        now = to_utc(self.clock())
        if interval.start < now:
            raise InvalidArgument("cannot book a slot in the past")

        requester = require_requester(await self.identity.get_user(requester_id), requester_id)
        provider = require_provider(await self.identity.get_user(provider_id), provider_id)

        if self.enforce_availability_window:
            await self._require_within_availability(provider_id, interval)

        booking = Booking(
            booking_id=str(uuid.uuid4()),
            provider_id=provider_id,
            requester_id=requester_id,
            interval=interval,
            status=BookingStatus.SCHEDULED,
            reminder_sent=False,
            note=note,
            created_at=now,
        )
        await self._commit(booking)
        log.info(
            "booking %s scheduled: provider=%s requester=%s %s-%s",
            booking.booking_id,
            provider_id,
            requester_id,
            interval.start.isoformat(),
            interval.end.isoformat(),
        )

        subject, body = scheduled_message(booking, provider, requester)
        await notify_all(self.notifications, [requester, provider], subject, body)
        return booking

    async def cancel(self, booking_id: str, actor_id: str) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        require_canceller(actor_id, booking)

        if booking.status != BookingStatus.SCHEDULED:
            raise InvalidState(f"Booking {booking_id} is {booking.status.value}, not SCHEDULED")

        try:
            await self.bookings.update_status(
                booking_id, BookingStatus.CANCELLED, expected=BookingStatus.SCHEDULED
            )
        except StoreConflict:
            # another party got there first
            raise InvalidState(f"Booking {booking_id} is no longer SCHEDULED")

        booking.status = BookingStatus.CANCELLED
        log.info("booking %s cancelled by %s", booking_id, actor_id)

        provider = await self.identity.get_user(booking.provider_id)
        requester = await self.identity.get_user(booking.requester_id)
        subject, body = cancelled_message(booking, provider, requester)
        await notify_all(self.notifications, [requester, provider], subject, body)
        return booking

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _require_within_availability(self, provider_id: str, interval: TimeInterval):
        local_day = interval.start.astimezone(self.resolver.tz).date()
        windows = await self.resolver.windows_for(provider_id, local_day)
        if not any(contains(window, interval) for window in windows):
            raise SlotUnavailable("Requested time is outside the provider's availability")

    async def _commit(self, booking: Booking):
        attempts = self.commit_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                live = await self.bookings.list_scheduled(booking.provider_id, booking.interval)
                if has_conflict(booking.interval, live, booking.provider_id):
                    raise SlotUnavailable("Time slot not available")
                await self.bookings.insert_scheduled(booking)
                return
            except StoreConflict:
                raise SlotUnavailable("Time slot not available")
            except TransientStorageError:
                log.warning(
                    "transient storage failure committing booking %s (attempt %d/%d)",
                    booking.booking_id,
                    attempt,
                    attempts,
                    exc_info=True,
                )
        raise StorageFailure(f"Could not commit booking after {attempts} attempts")
