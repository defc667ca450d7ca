from .domain import ROLE_PROVIDER, ROLE_REQUESTER, Booking, UserRecord
from .errors import Forbidden, NotFound


def can_book(requester: UserRecord | None) -> bool:
    return requester is not None and requester.role == ROLE_REQUESTER


def can_be_booked(provider: UserRecord | None) -> bool:
    return provider is not None and provider.role == ROLE_PROVIDER


def can_cancel(actor_id: str, booking: Booking) -> bool:
    return actor_id in booking.parties()


def can_view(actor_id: str, booking: Booking) -> bool:
    return actor_id in booking.parties()


def require_requester(user: UserRecord | None, user_id: str) -> UserRecord:
    if user is None:
        raise NotFound(f"User {user_id} not found")
    if not can_book(user):
        raise Forbidden("Only requesters can book appointments")
    return user


def require_provider(user: UserRecord | None, provider_id: str) -> UserRecord:
    # a non-provider id is as unknown as a missing one from the booker's side
    if not can_be_booked(user):
        raise NotFound(f"Provider {provider_id} not found")
    return user


def require_viewer(actor_id: str, booking: Booking):
    if not can_view(actor_id, booking):
        raise Forbidden("Not a party to this booking")


def require_canceller(actor_id: str, booking: Booking):
    if not can_cancel(actor_id, booking):
        raise Forbidden("Only the provider or the requester can cancel this booking")
