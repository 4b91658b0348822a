from datetime import date, datetime
from typing import Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_availability_cache, get_clock, get_current_user
from cleanouts.models.booking import BookingStatus
from cleanouts.models.user import User
from cleanouts.schemas.booking import Booking as BookingSchema, BookingCreate, BookingUpdate
from cleanouts.schemas.common import ErrorResponse, PaginatedResponse
from cleanouts.services.availability_cache import AvailabilityCache
from cleanouts.services.bookings import BookingFilters, BookingService

router = APIRouter(
    prefix="/bookings",
    tags=["Bookings"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


def _booking_service(
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, cache, now=clock)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post("", response_model=BookingSchema, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(_booking_service),
    current_user: User = Depends(get_current_user),
):
    """Book a service; 409 if the slot overlaps an existing booking."""
    return service.create(data, current_user)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get("", response_model=PaginatedResponse[BookingSchema])
def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    service_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None, description="Admins only"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: BookingService = Depends(_booking_service),
    current_user: User = Depends(get_current_user),
):
    """Own bookings for users, every booking for admins; newest first."""
    filters = BookingFilters(
        status=status.value if status else None,
        service_id=service_id,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
    )
    bookings, total = service.list(current_user, filters, page, limit)
    return PaginatedResponse(
        data=bookings,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(_booking_service),
    current_user: User = Depends(get_current_user),
):
    return service.get(booking_id, current_user)


# ---------------------------------------------------------------------------
# Update / cancel
# ---------------------------------------------------------------------------


@router.put("/{booking_id}", response_model=BookingSchema)
def update_booking(
    booking_id: UUID,
    data: BookingUpdate,
    service: BookingService = Depends(_booking_service),
    current_user: User = Depends(get_current_user),
):
    """Reschedule, edit notes or (admins) move the booking through its states."""
    return service.update(booking_id, data, current_user)


@router.delete("/{booking_id}", response_model=BookingSchema)
def cancel_booking(
    booking_id: UUID,
    service: BookingService = Depends(_booking_service),
    current_user: User = Depends(get_current_user),
):
    """Cancel a booking. Bookings are never deleted."""
    return service.cancel(booking_id, current_user)
