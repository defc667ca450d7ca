"""SQLAlchemy implementations of the storage contracts in ``stores``.

Each operation opens its own session from the factory so a store instance can
be shared by concurrent requests and by the reminder worker.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from . import models
from .domain import AvailabilityRule, Booking, BookingStatus, UserRecord
from .errors import StorageFailure, StoreConflict, TransientStorageError
from .intervals import TimeInterval, to_utc
from .stores import BookingStore, IdentityLookup, RuleStore

log = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive values; everything is written in UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_user(row: models.User) -> UserRecord:
    return UserRecord(user_id=row.user_id, name=row.name, email=row.email, role=row.role)


def _to_rule(row: models.AvailabilityRule) -> AvailabilityRule:
    return AvailabilityRule(
        provider_id=row.provider_id,
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
    )


def _to_booking(row: models.Booking) -> Booking:
    return Booking(
        booking_id=row.booking_id,
        provider_id=row.provider_id,
        requester_id=row.requester_id,
        interval=TimeInterval(_as_utc(row.start_at), _as_utc(row.end_at)),
        status=BookingStatus(row.status),
        reminder_sent=bool(row.reminder_sent),
        note=row.note,
        created_at=_as_utc(row.created_at) if row.created_at else None,
    )


class _SqlStore:

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        try:
            async with self.session_factory() as db:
                yield db
        except IntegrityError as e:
            raise StoreConflict(str(e.orig)) from e
        except OperationalError as e:
            raise TransientStorageError(str(e.orig)) from e
        except SQLAlchemyError as e:
            log.error("storage failure: %s", e)
            raise StorageFailure("Storage failure") from e


class SqlIdentityStore(_SqlStore, IdentityLookup):

    async def get_user(self, user_id: str) -> UserRecord | None:
        async with self._session() as db:
            res = await db.execute(select(models.User).where(models.User.user_id == user_id))
            row = res.scalar_one_or_none()
            return _to_user(row) if row else None

    async def create_user(self, name: str, email: str, role: str) -> UserRecord:
        """Raises ``StoreConflict`` when the email is taken."""
        row = models.User(user_id=str(uuid.uuid4()), name=name, email=email, role=role)
        async with self._session() as db:
            db.add(row)
            await db.commit()
        return _to_user(row)

    async def list_by_role(self, role: str) -> Sequence[UserRecord]:
        async with self._session() as db:
            res = await db.execute(
                select(models.User).where(models.User.role == role).order_by(models.User.name)
            )
            return [_to_user(row) for row in res.scalars().all()]


class SqlRuleStore(_SqlStore, RuleStore):

    async def list_rules(self, provider_id: str, day_of_week: int) -> Sequence[AvailabilityRule]:
        async with self._session() as db:
            res = await db.execute(
                select(models.AvailabilityRule)
                .where(
                    models.AvailabilityRule.provider_id == provider_id,
                    models.AvailabilityRule.day_of_week == day_of_week,
                )
                .order_by(models.AvailabilityRule.start_time)
            )
            return [_to_rule(row) for row in res.scalars().all()]

    async def list_all_rules(self, provider_id: str) -> Sequence[AvailabilityRule]:
        async with self._session() as db:
            res = await db.execute(
                select(models.AvailabilityRule)
                .where(models.AvailabilityRule.provider_id == provider_id)
                .order_by(models.AvailabilityRule.day_of_week, models.AvailabilityRule.start_time)
            )
            return [_to_rule(row) for row in res.scalars().all()]

    async def replace_rules(self, provider_id: str, rules: Sequence[AvailabilityRule]) -> None:
        async with self._session() as db:
            async with db.begin():
                await db.execute(
                    delete(models.AvailabilityRule).where(
                        models.AvailabilityRule.provider_id == provider_id
                    )
                )
                db.add_all(
                    models.AvailabilityRule(
                        provider_id=provider_id,
                        day_of_week=rule.day_of_week,
                        start_time=rule.start_time,
                        end_time=rule.end_time,
                    )
                    for rule in rules
                )


class SqlBookingStore(_SqlStore, BookingStore):

    async def get(self, booking_id: str) -> Booking | None:
        async with self._session() as db:
            res = await db.execute(select(models.Booking).where(models.Booking.booking_id == booking_id))
            row = res.scalar_one_or_none()
            return _to_booking(row) if row else None

    async def list_scheduled(self, provider_id: str, date_range: TimeInterval) -> Sequence[Booking]:
        date_range = date_range.normalized()
        async with self._session() as db:
            res = await db.execute(
                select(models.Booking)
                .where(
                    models.Booking.provider_id == provider_id,
                    models.Booking.status == BookingStatus.SCHEDULED.value,
                    models.Booking.start_at < date_range.end,
                    models.Booking.end_at > date_range.start,
                )
                .order_by(models.Booking.start_at)
            )
            return [_to_booking(row) for row in res.scalars().all()]

    async def insert_scheduled(self, booking: Booking) -> None:
        interval = booking.interval.normalized()
        async with self._session() as db:
            async with db.begin():
                # Postgres: the provider row lock serializes inserts per provider
                # and the exclusion constraint backs it up. SQLite already holds
                # the database write lock from BEGIN IMMEDIATE.
                await db.execute(
                    select(models.User.id)
                    .where(models.User.user_id == booking.provider_id)
                    .with_for_update()
                )
                clash = await db.execute(
                    select(models.Booking.booking_id)
                    .where(
                        models.Booking.provider_id == booking.provider_id,
                        models.Booking.status == BookingStatus.SCHEDULED.value,
                        models.Booking.start_at < interval.end,
                        models.Booking.end_at > interval.start,
                    )
                    .limit(1)
                )
                existing = clash.scalar_one_or_none()
                if existing is not None:
                    raise StoreConflict(f"overlaps booking {existing}")

                db.add(
                    models.Booking(
                        booking_id=booking.booking_id,
                        provider_id=booking.provider_id,
                        requester_id=booking.requester_id,
                        start_at=interval.start,
                        end_at=interval.end,
                        status=BookingStatus.SCHEDULED.value,
                        reminder_sent=False,
                        note=booking.note,
                        created_at=to_utc(booking.created_at) if booking.created_at else None,
                    )
                )

    async def update_status(
        self,
        booking_id: str,
        new_status: BookingStatus,
        expected: BookingStatus | None = None,
    ) -> None:
        stmt = update(models.Booking).where(models.Booking.booking_id == booking_id)
        if expected is not None:
            stmt = stmt.where(models.Booking.status == expected.value)
        stmt = stmt.values(status=new_status.value)

        async with self._session() as db:
            res = await db.execute(stmt)
            await db.commit()

        if res.rowcount == 0:
            raise StoreConflict(f"booking {booking_id} missing or not {expected.value if expected else 'updatable'}")

    async def mark_reminded(self, booking_id: str) -> None:
        async with self._session() as db:
            await db.execute(
                update(models.Booking)
                .where(models.Booking.booking_id == booking_id)
                .values(reminder_sent=True)
            )
            await db.commit()

    async def list_for_user(self, user_id: str) -> Sequence[Booking]:
        async with self._session() as db:
            res = await db.execute(
                select(models.Booking)
                .where(or_(models.Booking.provider_id == user_id, models.Booking.requester_id == user_id))
                .order_by(models.Booking.start_at)
            )
            return [_to_booking(row) for row in res.scalars().all()]

    async def list_due_reminders(self, start_from: datetime, start_to: datetime) -> Sequence[Booking]:
        async with self._session() as db:
            res = await db.execute(
                select(models.Booking)
                .where(
                    models.Booking.status == BookingStatus.SCHEDULED.value,
                    models.Booking.reminder_sent.is_(False),
                    models.Booking.start_at >= to_utc(start_from),
                    models.Booking.start_at <= to_utc(start_to),
                )
                .order_by(models.Booking.start_at)
            )
            return [_to_booking(row) for row in res.scalars().all()]
