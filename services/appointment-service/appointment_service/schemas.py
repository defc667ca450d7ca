from datetime import date, datetime
from typing import List

from pydantic import BaseModel, Field, field_validator

from .domain import ALLOWED_ROLES


class CreateUser(BaseModel):
    name: str
    email: str
    role: str

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value: str) -> str:
        role = (value or "").strip().lower()
        if role not in ALLOWED_ROLES:
            raise ValueError(f"Invalid role: {value}. Allowed: {sorted(ALLOWED_ROLES)}")
        return role


class UserResponse(BaseModel):
    user_id: str
    name: str
    email: str
    role: str


class AvailabilityRuleIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday
    start_time: str  # HH:MM
    end_time: str  # HH:MM


class SetAvailabilityRules(BaseModel):
    rules: List[AvailabilityRuleIn]


class AvailabilityRuleOut(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str


class AvailabilityRulesResponse(BaseModel):
    provider_id: str
    rules: List[AvailabilityRuleOut]


class Slot(BaseModel):
    start: datetime
    end: datetime


class SlotsResponse(BaseModel):
    provider_id: str
    day: date
    slot_minutes: int
    slots: List[Slot]


class CreateBookingRequest(BaseModel):
    provider_id: str
    start_at: datetime
    duration_minutes: int = 30
    note: str | None = None


class BookingResponse(BaseModel):
    booking_id: str
    provider_id: str
    requester_id: str
    start_at: datetime
    end_at: datetime
    status: str
    reminder_sent: bool
    note: str | None = None


class CancelBookingResponse(BaseModel):
    booking_id: str
    status: str
