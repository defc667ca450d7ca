"""Expands a provider's weekly template into concrete slot candidates for a day.

Rule times are wall-clock times in the schedule timezone; everything the
resolver emits is UTC. Each rule is walked on its own, in steps of the slot
duration, and a candidate is kept only while it fits inside the rule window
and has not already ended.
"""

from __future__ import annotations

import heapq
import logging
from datetime import date, datetime, timedelta
from itertools import groupby
from typing import Callable, Iterator, Sequence
from zoneinfo import ZoneInfo

from . import config
from .domain import AvailabilityRule, day_of_week
from .errors import InvalidArgument
from .intervals import TimeInterval, overlaps, to_utc, utc_now
from .stores import RuleStore

log = logging.getLogger(__name__)


def as_slot_duration(value: timedelta | int | float) -> timedelta:
    """Accept a ``timedelta`` or a number of minutes."""
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            duration = timedelta(minutes=value)
        except OverflowError:
            raise InvalidArgument(f"slot duration out of range: {value} minutes")
    else:
        raise InvalidArgument("slot duration must be a timedelta or a number of minutes")

    if duration <= timedelta(0):
        raise InvalidArgument("slot duration must be positive")
    return duration


def as_day(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise InvalidArgument("day must be a calendar date")
    return value


def rule_window(rule: AvailabilityRule, day: date, tz: ZoneInfo) -> TimeInterval:
    start = datetime.combine(day, rule.start_time, tzinfo=tz)
    end = datetime.combine(day, rule.end_time, tzinfo=tz)
    return TimeInterval(to_utc(start), to_utc(end))


def check_rules_disjoint(rules: Sequence[AvailabilityRule]):
    """Reject a template in which two rules of the same weekday overlap.

    Adjacent windows (09:00-12:00 and 12:00-15:00) are fine.
    """
    ordered = sorted(rules, key=lambda r: (r.day_of_week, r.start_time))
    for dow, same_day in groupby(ordered, key=lambda r: r.day_of_week):
        previous = None
        for rule in same_day:
            if previous is not None and rule.start_time < previous.end_time:
                raise InvalidArgument(
                    f"Availability rules overlap on day {dow}: "
                    f"{previous.start_time:%H:%M}-{previous.end_time:%H:%M} and "
                    f"{rule.start_time:%H:%M}-{rule.end_time:%H:%M}"
                )
            previous = rule


class CandidateSlots:
    """Lazy, finite and restartable: every iteration walks the windows again."""

    def __init__(self, windows: Sequence[TimeInterval], slot_duration: timedelta, now: datetime):
        self.windows = sorted(windows)
        self.slot_duration = slot_duration
        self.now = now

    def _walk(self, window: TimeInterval) -> Iterator[TimeInterval]:
        cursor = window.start
        while window.end - cursor >= self.slot_duration:
            candidate = TimeInterval(cursor, cursor + self.slot_duration)
            if candidate.end > self.now:
                yield candidate
            cursor = candidate.end

    def __iter__(self) -> Iterator[TimeInterval]:
        # merge keeps the output chronological even if windows interleave
        return heapq.merge(*(self._walk(w) for w in self.windows))

    def span(self) -> TimeInterval | None:
        """Smallest interval covering every window, None when there are none."""
        if not self.windows:
            return None
        return TimeInterval(
            min(w.start for w in self.windows),
            max(w.end for w in self.windows),
        )


class AvailabilityResolver:

    def __init__(
        self,
        rule_store: RuleStore,
        clock: Callable[[], datetime] = utc_now,
        timezone_name: str | None = None,
    ):
        self.rule_store = rule_store
        self.clock = clock
        self.tz = ZoneInfo(timezone_name or config.SCHEDULE_TIMEZONE)

    async def windows_for(self, provider_id: str, day: date) -> list[TimeInterval]:
        day = as_day(day)
        rules = await self.rule_store.list_rules(provider_id, day_of_week(day))
        return sorted(rule_window(rule, day, self.tz) for rule in rules)

    async def resolve(
        self,
        provider_id: str,
        day: date,
        slot_duration: timedelta | int,
    ) -> CandidateSlots:
        duration = as_slot_duration(slot_duration)
        windows = await self.windows_for(provider_id, day)
        if not windows:
            log.debug("no availability rules for provider %s on %s", provider_id, day)

        for a, b in zip(windows, windows[1:]):
            if overlaps(a, b):
                log.warning(
                    "overlapping availability windows for provider %s on %s; "
                    "duplicate candidates are possible",
                    provider_id,
                    day,
                )
                break

        return CandidateSlots(windows, duration, to_utc(self.clock()))
