"""Shared fixtures: in-memory stores, a settable clock and a recording sink."""

import asyncio
from dataclasses import replace
from datetime import date, datetime, time, timezone

import pytest

from appointment_service.booking import BookingEngine
from appointment_service.domain import (
    ROLE_PROVIDER,
    ROLE_REQUESTER,
    AvailabilityRule,
    BookingStatus,
    UserRecord,
)
from appointment_service.errors import StoreConflict, TransientStorageError
from appointment_service.intervals import overlaps
from appointment_service.notifications import NotificationSink
from appointment_service.reminders import ReminderSelector
from appointment_service.stores import BookingStore, IdentityLookup, RuleStore

# 2030-01-07 is a Monday; "now" sits on the Sunday before
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 6, 12, 0, tzinfo=timezone.utc)

PROVIDER = "prov-1"
OTHER_PROVIDER = "prov-2"
REQUESTER = "req-1"
OTHER_REQUESTER = "req-2"


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


class InMemoryIdentity(IdentityLookup):
    def __init__(self):
        self.users = {}

    def add(self, user_id: str, role: str) -> UserRecord:
        user = UserRecord(user_id=user_id, name=user_id.title(), email=f"{user_id}@example.com", role=role)
        self.users[user_id] = user
        return user

    async def get_user(self, user_id):
        await asyncio.sleep(0)
        return self.users.get(user_id)


class InMemoryRules(RuleStore):
    def __init__(self):
        self.rules = {}

    async def list_rules(self, provider_id, day_of_week):
        return [r for r in self.rules.get(provider_id, []) if r.day_of_week == day_of_week]

    async def list_all_rules(self, provider_id):
        return sorted(self.rules.get(provider_id, []), key=lambda r: (r.day_of_week, r.start_time))

    async def replace_rules(self, provider_id, rules):
        self.rules[provider_id] = list(rules)


class InMemoryBookings(BookingStore):
    """Overlap check and insert happen with no await in between, like a unique constraint."""

    def __init__(self):
        self.rows = {}
        self.transient_failures = 0
        self.insert_attempts = 0

    async def get(self, booking_id):
        row = self.rows.get(booking_id)
        return replace(row) if row else None

    async def list_scheduled(self, provider_id, date_range):
        # yield so concurrent callers interleave between check and insert
        await asyncio.sleep(0)
        return [
            replace(b)
            for b in self.rows.values()
            if b.provider_id == provider_id and b.is_scheduled and overlaps(b.interval, date_range)
        ]

    async def insert_scheduled(self, booking):
        self.insert_attempts += 1
        if self.transient_failures:
            self.transient_failures -= 1
            raise TransientStorageError("lock timeout")
        for row in self.rows.values():
            if row.provider_id == booking.provider_id and row.is_scheduled and overlaps(row.interval, booking.interval):
                raise StoreConflict(f"overlaps {row.booking_id}")
        self.rows[booking.booking_id] = replace(booking)

    async def update_status(self, booking_id, new_status, expected=None):
        row = self.rows.get(booking_id)
        if row is None or (expected is not None and row.status != expected):
            raise StoreConflict(booking_id)
        row.status = new_status

    async def mark_reminded(self, booking_id):
        row = self.rows.get(booking_id)
        if row:
            row.reminder_sent = True

    async def list_for_user(self, user_id):
        return sorted(
            (replace(b) for b in self.rows.values() if user_id in b.parties()),
            key=lambda b: b.interval.start,
        )

    async def list_due_reminders(self, start_from, start_to):
        return sorted(
            (
                replace(b)
                for b in self.rows.values()
                if b.status == BookingStatus.SCHEDULED
                and not b.reminder_sent
                and start_from <= b.interval.start <= start_to
            ),
            key=lambda b: b.interval.start,
        )


class RecordingSink(NotificationSink):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def notify(self, recipient_email, subject, body):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((recipient_email, subject, body))


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def identity():
    store = InMemoryIdentity()
    store.add(PROVIDER, ROLE_PROVIDER)
    store.add(OTHER_PROVIDER, ROLE_PROVIDER)
    store.add(REQUESTER, ROLE_REQUESTER)
    store.add(OTHER_REQUESTER, ROLE_REQUESTER)
    return store


@pytest.fixture
def rules():
    store = InMemoryRules()
    # Monday 09:00-12:00
    store.rules[PROVIDER] = [AvailabilityRule(PROVIDER, 1, time(9, 0), time(12, 0))]
    store.rules[OTHER_PROVIDER] = [AvailabilityRule(OTHER_PROVIDER, 1, time(9, 0), time(12, 0))]
    return store


@pytest.fixture
def bookings():
    return InMemoryBookings()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(identity, rules, bookings, sink, clock):
    return BookingEngine(identity, rules, bookings, sink, clock=clock, commit_retries=2)


@pytest.fixture
def selector(bookings):
    return ReminderSelector(bookings)
