"""Wiring: one set of stores, sink and engine objects per process."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from shared.rabbitmq import RabbitPublisher

from .availability import AvailabilityResolver
from .booking import BookingEngine
from .config import RABBIT_URL
from .db import SessionLocal
from .intervals import utc_now
from .notifications import NotificationSink, RabbitNotificationSink
from .reminders import ReminderSelector
from .sql_stores import SqlBookingStore, SqlIdentityStore, SqlRuleStore


@dataclass
class ServiceContainer:
    identity: SqlIdentityStore
    rules: SqlRuleStore
    bookings: SqlBookingStore
    notifications: NotificationSink
    resolver: AvailabilityResolver
    engine: BookingEngine
    reminders: ReminderSelector
    clock: Callable[[], datetime] = utc_now


def build_container(session_factory, notifications: NotificationSink, clock=utc_now) -> ServiceContainer:
    identity = SqlIdentityStore(session_factory)
    rules = SqlRuleStore(session_factory)
    bookings = SqlBookingStore(session_factory)
    resolver = AvailabilityResolver(rules, clock=clock)
    engine = BookingEngine(identity, rules, bookings, notifications, clock=clock, resolver=resolver)
    return ServiceContainer(
        identity=identity,
        rules=rules,
        bookings=bookings,
        notifications=notifications,
        resolver=resolver,
        engine=engine,
        reminders=ReminderSelector(bookings),
        clock=clock,
    )


publisher = RabbitPublisher(RABBIT_URL)

container = build_container(SessionLocal, RabbitNotificationSink(publisher))


def get_container() -> ServiceContainer:
    return container
