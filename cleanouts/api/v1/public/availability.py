from datetime import date, datetime
from typing import Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_availability_cache, get_clock, get_current_admin_user
from cleanouts.core.config import settings
from cleanouts.models.user import User
from cleanouts.schemas.availability import (
    AvailabilityResponse,
    BulkAvailabilityRequest,
    BulkAvailabilityResponse,
    CacheClearResponse,
)
from cleanouts.services.availability import AvailabilityService
from cleanouts.services.availability_cache import AvailabilityCache

router = APIRouter(prefix="/availability", tags=["Availability"])


# ---------------------------------------------------------------------------
# Single date
# ---------------------------------------------------------------------------


@router.get("", response_model=AvailabilityResponse)
def get_availability(
    booking_date: date = Query(..., alias="date", description="YYYY-MM-DD"),
    service_id: Optional[UUID] = Query(None),
    duration: int = Query(settings.DEFAULT_DURATION_HOURS, description="Whole hours"),
    exclude_booking_id: Optional[UUID] = Query(None, description="Ignore this booking (rescheduling)"),
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Slot-by-slot availability for one date."""
    service = AvailabilityService(db, cache, now=clock)
    result, cached = service.get_availability(booking_date, service_id, duration, exclude_booking_id)
    return AvailabilityResponse(data=result, cached=cached)


# ---------------------------------------------------------------------------
# Bulk (calendar view)
# ---------------------------------------------------------------------------


@router.post("", response_model=BulkAvailabilityResponse)
def get_bulk_availability(
    body: BulkAvailabilityRequest,
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Day-level availability for up to MAX_BULK_DATES dates, in date order."""
    service = AvailabilityService(db, cache, now=clock)
    result, cached = service.get_bulk_availability(body.dates, body.service_id, body.duration)
    performance = result.performance.model_copy(update={"cached": cached})
    return BulkAvailabilityResponse(data=result.dates, performance=performance, cached=cached)


# ---------------------------------------------------------------------------
# Cache management (admin)
# ---------------------------------------------------------------------------


@router.delete("", response_model=CacheClearResponse)
def clear_availability_cache(
    booking_date: Optional[date] = Query(None, alias="date"),
    service_id: Optional[UUID] = Query(None),
    cache: AvailabilityCache = Depends(get_availability_cache),
    current_user: User = Depends(get_current_admin_user),
):
    cleared = cache.invalidate(booking_date, service_id)
    if booking_date:
        message = f"Cache cleared for date {booking_date.isoformat()}"
        if service_id:
            message += f" and service {service_id}"
    else:
        message = "All availability cache cleared"
    return CacheClearResponse(message=message, cleared=cleared)
