from datetime import date, time, timedelta

from dateutil import parser
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response

from . import config
from .availability import check_rules_disjoint
from .calendar_export import booking_to_ics
from .domain import ROLE_PROVIDER, AvailabilityRule, Booking
from .errors import InvalidArgument, StoreConflict
from .intervals import TimeInterval
from .schemas import (
    AvailabilityRuleOut,
    AvailabilityRulesResponse,
    BookingResponse,
    CancelBookingResponse,
    CreateBookingRequest,
    CreateUser,
    SetAvailabilityRules,
    Slot,
    SlotsResponse,
    UserResponse,
)
from .services import ServiceContainer, get_container

router = APIRouter()

# one appointment never spans more than a day
MAX_DURATION_MINUTES = 24 * 60


async def current_user_id(x_user_sub: str | None = Header(default=None)) -> str:
    # the gateway authenticates and forwards the subject
    if not x_user_sub:
        raise HTTPException(status_code=401, detail="Missing X-User-Sub header")
    return x_user_sub


def _parse_day(value: str) -> date:
    try:
        return parser.isoparse(value).date()
    except (ValueError, OverflowError):
        raise InvalidArgument(f"Invalid date: {value!r}, expected YYYY-MM-DD")


def _parse_time(value: str) -> time:
    try:
        parsed = parser.parse(value)
    except (ValueError, OverflowError):
        raise InvalidArgument(f"Invalid time: {value!r}, expected HH:MM")
    return parsed.time().replace(second=0, microsecond=0)


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.booking_id,
        provider_id=booking.provider_id,
        requester_id=booking.requester_id,
        start_at=booking.interval.start,
        end_at=booking.interval.end,
        status=booking.status.value,
        reminder_sent=booking.reminder_sent,
        note=booking.note,
    )


# -------- USERS --------

@router.post("/users", response_model=UserResponse)
async def create_user(data: CreateUser, container: ServiceContainer = Depends(get_container)):
    try:
        user = await container.identity.create_user(data.name, data.email, data.role)
    except StoreConflict:
        raise HTTPException(status_code=400, detail="User already exists")
    return UserResponse(user_id=user.user_id, name=user.name, email=user.email, role=user.role)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, container: ServiceContainer = Depends(get_container)):
    user = await container.identity.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(user_id=user.user_id, name=user.name, email=user.email, role=user.role)


# -------- PROVIDERS & AVAILABILITY --------

@router.get("/providers", response_model=list[UserResponse])
async def list_providers(container: ServiceContainer = Depends(get_container)):
    providers = await container.identity.list_by_role(ROLE_PROVIDER)
    return [
        UserResponse(user_id=p.user_id, name=p.name, email=p.email, role=p.role)
        for p in providers
    ]


@router.put("/providers/{provider_id}/availability-rules", response_model=AvailabilityRulesResponse)
async def set_availability_rules(
    provider_id: str,
    data: SetAvailabilityRules,
    user_id: str = Depends(current_user_id),
    container: ServiceContainer = Depends(get_container),
):
    if user_id != provider_id:
        raise HTTPException(status_code=403, detail="Providers can only edit their own availability")

    provider = await container.identity.get_user(provider_id)
    if not provider or provider.role != ROLE_PROVIDER:
        raise HTTPException(status_code=404, detail="Provider not found")

    rules = [
        AvailabilityRule(
            provider_id=provider_id,
            day_of_week=r.day_of_week,
            start_time=_parse_time(r.start_time),
            end_time=_parse_time(r.end_time),
        )
        for r in data.rules
    ]
    check_rules_disjoint(rules)
    await container.rules.replace_rules(provider_id, rules)

    return await get_availability_rules(provider_id, container)


@router.get("/providers/{provider_id}/availability-rules", response_model=AvailabilityRulesResponse)
async def get_availability_rules(provider_id: str, container: ServiceContainer = Depends(get_container)):
    rules = await container.rules.list_all_rules(provider_id)
    return AvailabilityRulesResponse(
        provider_id=provider_id,
        rules=[
            AvailabilityRuleOut(
                day_of_week=r.day_of_week,
                start_time=r.start_time.strftime("%H:%M"),
                end_time=r.end_time.strftime("%H:%M"),
            )
            for r in rules
        ],
    )


@router.get("/providers/{provider_id}/slots", response_model=SlotsResponse)
async def get_free_slots(
    provider_id: str,
    day: str = Query(..., alias="date", description="YYYY-MM-DD"),
    slot_minutes: int = Query(default=config.DEFAULT_SLOT_MINUTES),
    container: ServiceContainer = Depends(get_container),
):
    parsed_day = _parse_day(day)
    if slot_minutes > MAX_DURATION_MINUTES:
        raise InvalidArgument(f"slot_minutes must be at most {MAX_DURATION_MINUTES}")
    slots = await container.engine.free_slots(provider_id, parsed_day, timedelta(minutes=slot_minutes))
    return SlotsResponse(
        provider_id=provider_id,
        day=parsed_day,
        slot_minutes=slot_minutes,
        slots=[Slot(start=s.start, end=s.end) for s in slots],
    )


# -------- BOOKINGS --------

@router.post("/bookings", response_model=BookingResponse)
async def create_booking(
    data: CreateBookingRequest,
    user_id: str = Depends(current_user_id),
    container: ServiceContainer = Depends(get_container),
):
    if data.start_at.tzinfo is None:
        raise InvalidArgument("start_at must include a UTC offset")
    if not 0 < data.duration_minutes <= MAX_DURATION_MINUTES:
        raise InvalidArgument(f"duration_minutes must be between 1 and {MAX_DURATION_MINUTES}")

    interval = TimeInterval.of(data.start_at, timedelta(minutes=data.duration_minutes))
    booking = await container.engine.book(data.provider_id, user_id, interval, data.note)
    return _booking_response(booking)


@router.get("/bookings", response_model=list[BookingResponse])
async def list_bookings(
    user_id: str = Depends(current_user_id),
    container: ServiceContainer = Depends(get_container),
):
    bookings = await container.engine.list_bookings(user_id)
    return [_booking_response(b) for b in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    container: ServiceContainer = Depends(get_container),
):
    booking = await container.engine.get_booking(booking_id, user_id)
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    container: ServiceContainer = Depends(get_container),
):
    booking = await container.engine.cancel(booking_id, user_id)
    return CancelBookingResponse(booking_id=booking.booking_id, status=booking.status.value)


@router.get("/bookings/{booking_id}/ics")
async def export_booking_ics(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    container: ServiceContainer = Depends(get_container),
):
    booking = await container.engine.get_booking(booking_id, user_id)
    provider = await container.identity.get_user(booking.provider_id)
    requester = await container.identity.get_user(booking.requester_id)
    if not provider or not requester:
        raise HTTPException(status_code=404, detail="Booking party not found")

    return Response(
        content=booking_to_ics(booking, provider, requester),
        media_type="text/calendar",
        headers={"Content-Disposition": f"attachment; filename=appointment-{booking_id}.ics"},
    )
