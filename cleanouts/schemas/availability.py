from typing import List, Optional
from uuid import UUID
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, UUID4
from decimal import Decimal
from datetime import date


class TimeSlotAvailability(BaseModel):
    time: str
    available: bool
    reason: Optional[str] = None
    conflicting_bookings: int = 0


class AvailabilitySummary(BaseModel):
    total_slots: int
    available_slots: int
    booked_slots: int
    availability_percentage: int


class ServiceInfo(BaseModel):
    id: UUID4
    name: str
    base_price: Decimal
    price_per_hour: Decimal

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResult(BaseModel):
    date: date
    service_id: Optional[UUID] = None
    duration: int
    availability: List[TimeSlotAvailability]
    summary: AvailabilitySummary
    service_info: Optional[ServiceInfo] = None


# GET /availability
class AvailabilityResponse(BaseModel):
    success: bool = True
    data: AvailabilityResult
    cached: bool = False


# POST /availability: accepts the camelCase keys the booking widget sends
class BulkAvailabilityRequest(BaseModel):
    dates: List[date]
    service_id: Optional[UUID] = Field(
        None, validation_alias=AliasChoices("service_id", "serviceId")
    )
    duration: int = Field(2, ge=1, le=12)

    model_config = ConfigDict(frozen=True)


class DateAvailability(BaseModel):
    date: date
    available: bool
    reason: Optional[str] = None
    available_slots: int
    total_slots: int
    availability_percentage: int


class BulkPerformance(BaseModel):
    total_dates: int
    valid_dates: int
    past_dates: int
    cached: bool = False


class BulkAvailabilityResult(BaseModel):
    dates: List[DateAvailability]
    performance: BulkPerformance


class BulkAvailabilityResponse(BaseModel):
    success: bool = True
    data: List[DateAvailability]
    performance: BulkPerformance
    cached: bool = False


class CacheClearResponse(BaseModel):
    success: bool = True
    message: str
    cleared: int
