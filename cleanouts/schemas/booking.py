from __future__ import annotations

import re
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, EmailStr, Field, UUID4, field_validator
from decimal import Decimal
from datetime import date, datetime, time

from cleanouts.models.booking import BookingStatus, PaymentStatus
from cleanouts.schemas.service import ServiceSummary
from cleanouts.schemas.user import UserSummary
from cleanouts.utils.timeslots import parse_time

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")


def _parse_start_time(value):
    if value is None or isinstance(value, time):
        return value
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValueError("Please enter a valid time format (HH:MM)")
    return parse_time(value)


class CustomerInfo(BaseModel):
    full_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    phone: str = Field(min_length=8, max_length=30)
    address: str = Field(min_length=5, max_length=200)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not PHONE_PATTERN.match(v):
            raise ValueError("Please enter a valid phone number")
        return v

    model_config = ConfigDict(frozen=True)


# Booking: Create (POST /bookings)
class BookingCreate(BaseModel):
    service_id: UUID4
    booking_date: date
    start_time: time
    duration: int = Field(ge=1, le=12)
    notes: Optional[str] = Field(None, max_length=500)
    customer_info: CustomerInfo

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_start_time(cls, v):
        return _parse_start_time(v)

    model_config = ConfigDict(frozen=True)


# Booking: Update (PUT /bookings/{id}); every field optional
class BookingUpdate(BaseModel):
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    duration: Optional[int] = Field(None, ge=1, le=12)
    notes: Optional[str] = Field(None, max_length=500)
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_start_time(cls, v):
        return _parse_start_time(v)

    @property
    def reschedules(self) -> bool:
        return any(v is not None for v in (self.booking_date, self.start_time, self.duration))

    model_config = ConfigDict(frozen=True)


# Booking: Full response (POST /bookings, GET /bookings/{id})
class Booking(BaseModel):
    id: UUID4
    booking_number: str
    user_id: UUID
    service_id: UUID4
    booking_date: date
    start_time: time
    end_time: time
    duration: int
    total_price: Decimal
    status: str
    payment_status: str
    payment_intent_id: Optional[str] = None
    customer_info: CustomerInfo
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    service: Optional[ServiceSummary] = None

    model_config = ConfigDict(from_attributes=True)


# Booking: Admin view (GET /admin/bookings, includes user info)
class AdminBooking(Booking):
    user: Optional[UserSummary] = None

    model_config = ConfigDict(from_attributes=True)
