from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, Time, func

from .db import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, unique=True, nullable=False, index=True)

    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, index=True)  # provider/requester

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AvailabilityRule(Base):
    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    booking_id = Column(String, unique=True, nullable=False, index=True)

    provider_id = Column(String, nullable=False, index=True)
    requester_id = Column(String, nullable=False, index=True)

    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)

    status = Column(String, nullable=False, index=True)  # SCHEDULED/CANCELLED/COMPLETED
    reminder_sent = Column(Boolean, nullable=False, default=False)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_bookings_provider_status_start", "provider_id", "status", "start_at"),
        Index("ix_bookings_reminder_scan", "status", "reminder_sent", "start_at"),
    )
