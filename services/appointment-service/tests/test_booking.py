import asyncio
from datetime import timedelta

import pytest

from appointment_service.booking import BookingEngine
from appointment_service.domain import BookingStatus
from appointment_service.errors import (
    Forbidden,
    InvalidArgument,
    InvalidState,
    NotFound,
    SlotUnavailable,
    StorageFailure,
)
from appointment_service.intervals import TimeInterval, overlaps

from conftest import (
    MONDAY,
    OTHER_PROVIDER,
    OTHER_REQUESTER,
    PROVIDER,
    REQUESTER,
    RecordingSink,
    at,
)


def half_hour(hour, minute=0):
    return TimeInterval.of(at(hour, minute), timedelta(minutes=30))


async def test_free_slots_without_bookings(engine):
    slots = await engine.free_slots(PROVIDER, MONDAY, 30)
    assert len(slots) == 6


async def test_booked_slot_disappears_from_free_slots(engine):
    await engine.book(PROVIDER, REQUESTER, half_hour(10))

    slots = await engine.free_slots(PROVIDER, MONDAY, 30)

    assert [s.start for s in slots] == [at(9), at(9, 30), at(10, 30), at(11), at(11, 30)]


async def test_free_slots_unknown_provider_is_empty(engine):
    assert await engine.free_slots("nobody", MONDAY, 30) == []


async def test_book_creates_scheduled_booking(engine, bookings):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9), note="first visit")

    assert booking.status == BookingStatus.SCHEDULED
    assert booking.reminder_sent is False
    assert booking.note == "first visit"
    assert booking.interval == half_hour(9)
    assert booking.booking_id in bookings.rows


async def test_same_slot_twice_is_unavailable(engine):
    await engine.book(PROVIDER, REQUESTER, half_hour(10))

    with pytest.raises(SlotUnavailable):
        await engine.book(PROVIDER, OTHER_REQUESTER, half_hour(10))


async def test_adjacent_slot_can_be_booked(engine):
    await engine.book(PROVIDER, REQUESTER, half_hour(10))

    booking = await engine.book(PROVIDER, OTHER_REQUESTER, half_hour(10, 30))

    assert booking.interval.start == at(10, 30)


async def test_partial_overlap_is_unavailable(engine):
    await engine.book(PROVIDER, REQUESTER, half_hour(10))

    with pytest.raises(SlotUnavailable):
        await engine.book(PROVIDER, OTHER_REQUESTER, half_hour(10, 15))


async def test_same_time_with_another_provider_is_fine(engine):
    await engine.book(PROVIDER, REQUESTER, half_hour(10))
    booking = await engine.book(OTHER_PROVIDER, REQUESTER, half_hour(10))
    assert booking.provider_id == OTHER_PROVIDER


async def test_concurrent_bookings_for_same_slot_only_one_wins(engine, bookings):
    results = await asyncio.gather(
        *(engine.book(PROVIDER, requester, half_hour(11)) for requester in [REQUESTER, OTHER_REQUESTER] * 3),
        return_exceptions=True,
    )

    won = [r for r in results if not isinstance(r, Exception)]
    lost = [r for r in results if isinstance(r, Exception)]
    assert len(won) == 1
    assert all(isinstance(e, SlotUnavailable) for e in lost)

    scheduled = [b for b in bookings.rows.values() if b.is_scheduled]
    assert len(scheduled) == 1


async def test_concurrent_overlapping_bookings_never_both_commit(engine, bookings):
    await asyncio.gather(
        engine.book(PROVIDER, REQUESTER, TimeInterval(at(9), at(10))),
        engine.book(PROVIDER, OTHER_REQUESTER, TimeInterval(at(9, 30), at(10, 30))),
        engine.book(PROVIDER, REQUESTER, TimeInterval(at(10), at(11))),
        return_exceptions=True,
    )

    scheduled = [b for b in bookings.rows.values() if b.is_scheduled]
    for i, a in enumerate(scheduled):
        for b in scheduled[i + 1:]:
            assert not overlaps(a.interval, b.interval)


async def test_booking_in_the_past_rejected(engine, clock):
    clock.advance(timedelta(days=1, hours=-1))  # Monday 11:00

    with pytest.raises(InvalidArgument):
        await engine.book(PROVIDER, REQUESTER, half_hour(10))


async def test_seconds_in_booking_rejected(engine):
    interval = TimeInterval(at(9) + timedelta(seconds=30), at(9, 30))
    with pytest.raises(InvalidArgument):
        await engine.book(PROVIDER, REQUESTER, interval)


async def test_missing_ids_rejected(engine):
    with pytest.raises(InvalidArgument):
        await engine.book("", REQUESTER, half_hour(9))


async def test_outside_availability_is_unavailable(engine):
    with pytest.raises(SlotUnavailable):
        await engine.book(PROVIDER, REQUESTER, half_hour(12))
    with pytest.raises(SlotUnavailable):
        await engine.book(PROVIDER, REQUESTER, half_hour(11, 45))


async def test_window_check_can_be_disabled(identity, rules, bookings, sink, clock):
    engine = BookingEngine(identity, rules, bookings, sink, clock=clock, enforce_availability_window=False)
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(18))
    assert booking.is_scheduled


async def test_provider_cannot_book(engine):
    with pytest.raises(Forbidden):
        await engine.book(OTHER_PROVIDER, PROVIDER, half_hour(9))


async def test_unknown_requester_not_found(engine):
    with pytest.raises(NotFound):
        await engine.book(PROVIDER, "ghost", half_hour(9))


async def test_booking_a_requester_as_provider_not_found(engine):
    with pytest.raises(NotFound):
        await engine.book(OTHER_REQUESTER, REQUESTER, half_hour(9))


async def test_both_parties_notified_on_booking(engine, sink):
    await engine.book(PROVIDER, REQUESTER, half_hour(9))

    recipients = [to for to, _, _ in sink.sent]
    assert recipients == [f"{REQUESTER}@example.com", f"{PROVIDER}@example.com"]
    assert sink.sent[0][1].startswith("Appointment scheduled")


async def test_notification_failure_does_not_fail_booking(identity, rules, bookings, clock):
    engine = BookingEngine(identity, rules, bookings, RecordingSink(fail=True), clock=clock)

    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))

    assert booking.booking_id in bookings.rows


async def test_transient_failures_are_retried(engine, bookings):
    bookings.transient_failures = 2

    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))

    assert bookings.insert_attempts == 3
    assert booking.booking_id in bookings.rows


async def test_persistent_transient_failure_surfaces_storage_failure(engine, bookings):
    bookings.transient_failures = 10

    with pytest.raises(StorageFailure):
        await engine.book(PROVIDER, REQUESTER, half_hour(9))

    # commit_retries=2 in the fixture
    assert bookings.insert_attempts == 3
    assert bookings.rows == {}


async def test_cancel_by_requester(engine, sink):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))
    sink.sent.clear()

    cancelled = await engine.cancel(booking.booking_id, REQUESTER)

    assert cancelled.status == BookingStatus.CANCELLED
    assert len(sink.sent) == 2
    assert sink.sent[0][1].startswith("Appointment cancelled")


async def test_cancel_by_provider(engine, bookings):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))
    await engine.cancel(booking.booking_id, PROVIDER)
    assert bookings.rows[booking.booking_id].status == BookingStatus.CANCELLED


async def test_cancel_twice_is_invalid_state(engine):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))
    await engine.cancel(booking.booking_id, REQUESTER)

    with pytest.raises(InvalidState):
        await engine.cancel(booking.booking_id, REQUESTER)


async def test_cancel_completed_booking_is_invalid_state(engine, bookings):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))
    bookings.rows[booking.booking_id].status = BookingStatus.COMPLETED

    with pytest.raises(InvalidState):
        await engine.cancel(booking.booking_id, PROVIDER)


async def test_racing_cancels_one_wins(engine, bookings):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))

    results = await asyncio.gather(
        engine.cancel(booking.booking_id, PROVIDER),
        engine.cancel(booking.booking_id, REQUESTER),
        return_exceptions=True,
    )

    assert sum(not isinstance(r, Exception) for r in results) == 1
    assert sum(isinstance(r, InvalidState) for r in results) == 1
    assert bookings.rows[booking.booking_id].status == BookingStatus.CANCELLED


async def test_cancel_by_stranger_forbidden(engine):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))

    with pytest.raises(Forbidden):
        await engine.cancel(booking.booking_id, OTHER_REQUESTER)


async def test_cancel_unknown_booking_not_found(engine):
    with pytest.raises(NotFound):
        await engine.cancel("missing", REQUESTER)


async def test_cancelled_slot_is_free_again(engine):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(10))
    await engine.cancel(booking.booking_id, REQUESTER)

    slots = await engine.free_slots(PROVIDER, MONDAY, 30)
    assert half_hour(10) in slots

    rebooked = await engine.book(PROVIDER, OTHER_REQUESTER, half_hour(10))
    assert rebooked.is_scheduled


async def test_get_booking_party_only(engine):
    booking = await engine.book(PROVIDER, REQUESTER, half_hour(9))

    assert (await engine.get_booking(booking.booking_id, PROVIDER)).booking_id == booking.booking_id
    with pytest.raises(Forbidden):
        await engine.get_booking(booking.booking_id, OTHER_REQUESTER)
    with pytest.raises(NotFound):
        await engine.get_booking("missing", PROVIDER)


async def test_list_bookings_for_either_party(engine):
    late = await engine.book(PROVIDER, REQUESTER, half_hour(11))
    early = await engine.book(PROVIDER, OTHER_REQUESTER, half_hour(9))

    assert [b.booking_id for b in await engine.list_bookings(PROVIDER)] == [early.booking_id, late.booking_id]
    assert [b.booking_id for b in await engine.list_bookings(REQUESTER)] == [late.booking_id]
    with pytest.raises(NotFound):
        await engine.list_bookings("ghost")
