"""Best-effort notifications to the two parties of a booking.

Delivery belongs to a downstream mail worker consuming
``notification.requested`` events; this side only publishes them. A failed
notification is logged and never fails the booking operation that caused it.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable

from shared.rabbitmq import RabbitPublisher

from .domain import Booking, UserRecord

log = logging.getLogger(__name__)

NOTIFICATION_ROUTING_KEY = "notification.requested"

_WHEN_FORMAT = "%Y-%m-%d %H:%M UTC"


def notification_event(recipient_email: str, subject: str, body: str) -> str:
    """JSON envelope consumed by the mail worker."""
    return json.dumps(
        {
            "event_id": str(uuid.uuid4()),
            "event_type": NOTIFICATION_ROUTING_KEY,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "data": {
                "recipient_email": recipient_email,
                "subject": subject,
                "body": body,
            },
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )


class NotificationSink(ABC):

    @abstractmethod
    async def notify(self, recipient_email: str, subject: str, body: str) -> None:
        """Hand one message over for delivery. May raise; callers isolate failures."""


class RabbitNotificationSink(NotificationSink):

    def __init__(self, publisher: RabbitPublisher):
        self.publisher = publisher

    async def notify(self, recipient_email: str, subject: str, body: str) -> None:
        body_json = notification_event(recipient_email, subject, body)
        published = await self.publisher.publish(NOTIFICATION_ROUTING_KEY, body_json)
        if not published:
            log.info("notification for %s not published: %s", recipient_email, subject)


async def notify_all(
    sink: NotificationSink,
    recipients: Iterable[UserRecord | None],
    subject: str,
    body: str,
) -> int:
    """Notify every recipient; returns how many handoffs succeeded."""
    delivered = 0
    for user in recipients:
        if user is None:
            continue
        try:
            await sink.notify(user.email, subject, body)
            delivered += 1
        except Exception:
            log.exception("notification to %s failed: %s", user.email, subject)
    return delivered


def _describe(booking: Booking, provider: UserRecord | None, requester: UserRecord | None) -> str:
    lines = [
        f"Requester: {requester.name if requester else booking.requester_id}",
        f"Provider: {provider.name if provider else booking.provider_id}",
        f"When: {booking.interval.start:{_WHEN_FORMAT}} - {booking.interval.end:%H:%M}",
        f"Note: {booking.note or '-'}",
    ]
    return "\n".join(lines)


def scheduled_message(booking, provider, requester) -> tuple[str, str]:
    subject = f"Appointment scheduled on {booking.interval.start:{_WHEN_FORMAT}}"
    return subject, "Appointment scheduled.\n\n" + _describe(booking, provider, requester)


def cancelled_message(booking, provider, requester) -> tuple[str, str]:
    subject = f"Appointment cancelled: {booking.interval.start:{_WHEN_FORMAT}}"
    return subject, "Appointment cancelled.\n\n" + _describe(booking, provider, requester)


def reminder_message(booking, provider, requester) -> tuple[str, str]:
    subject = f"Appointment reminder: {booking.interval.start:{_WHEN_FORMAT}}"
    return subject, "Reminder of your upcoming appointment.\n\n" + _describe(booking, provider, requester)
