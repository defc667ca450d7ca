from typing import Iterable, Iterator

from .domain import Booking
from .intervals import TimeInterval, overlaps


def _blocking(bookings: Iterable[Booking], provider_id: str | None) -> list[TimeInterval]:
    return [
        b.interval
        for b in bookings
        if b.is_scheduled and (provider_id is None or b.provider_id == provider_id)
    ]


def has_conflict(
    candidate: TimeInterval,
    existing: Iterable[Booking],
    provider_id: str | None = None,
) -> bool:
    """True if any SCHEDULED booking overlaps ``candidate``.

    Cancelled and completed bookings never block. With ``provider_id`` set,
    bookings of other providers are ignored as well.
    """
    return any(overlaps(candidate, busy) for busy in _blocking(existing, provider_id))


def filter_free(
    candidates: Iterable[TimeInterval],
    existing: Iterable[Booking],
    provider_id: str | None = None,
) -> Iterator[TimeInterval]:
    """Yield the candidates no SCHEDULED booking overlaps, in input order.

    Pairwise, O(candidates x bookings).
    """
    busy = _blocking(existing, provider_id)
    for candidate in candidates:
        if not any(overlaps(candidate, b) for b in busy):
            yield candidate
