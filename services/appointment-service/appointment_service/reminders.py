"""Selection of bookings that are due a one-time reminder.

``select_due`` is a pure read: calling it again before ``mark_reminded``
returns the same bookings. Delivery is at-least-once; if marking fails after
the notifications went out, the next pass sends them again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from .domain import Booking
from .errors import InvalidArgument
from .intervals import to_utc
from .notifications import NotificationSink, notify_all, reminder_message
from .stores import BookingStore, IdentityLookup

log = logging.getLogger(__name__)


class ReminderSelector:

    def __init__(self, bookings: BookingStore):
        self.bookings = bookings

    async def select_due(self, now: datetime, reminder_window: timedelta) -> Sequence[Booking]:
        if reminder_window < timedelta(0):
            raise InvalidArgument("reminder window must not be negative")
        now = to_utc(now)
        due = await self.bookings.list_due_reminders(now, now + reminder_window)
        return [b for b in due if b.is_scheduled and not b.reminder_sent]

    async def mark_reminded(self, booking_id: str) -> None:
        # safe on a booking cancelled since selection; the flag is just set
        await self.bookings.mark_reminded(booking_id)


async def dispatch_due_reminders(
    selector: ReminderSelector,
    identity: IdentityLookup,
    sink: NotificationSink,
    now: datetime,
    reminder_window: timedelta,
) -> list[str]:
    """One reminder pass: notify both parties of each due booking, then mark it.

    Returns the ids that were marked.
    """
    marked = []
    for booking in await selector.select_due(now, reminder_window):
        provider = await identity.get_user(booking.provider_id)
        requester = await identity.get_user(booking.requester_id)
        subject, body = reminder_message(booking, provider, requester)
        await notify_all(sink, [requester, provider], subject, body)

        await selector.mark_reminded(booking.booking_id)
        marked.append(booking.booking_id)
        log.info("reminder sent for booking %s", booking.booking_id)
    return marked
