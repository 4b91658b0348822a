from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_availability_cache, get_current_admin_user
from cleanouts.models.booking import BookingStatus
from cleanouts.models.user import User
from cleanouts.schemas.booking import AdminBooking
from cleanouts.schemas.common import PaginatedResponse
from cleanouts.services.availability_cache import AvailabilityCache
from cleanouts.services.bookings import BookingFilters, BookingService

router = APIRouter(prefix="/admin/bookings", tags=["Admin - Bookings"])


@router.get("", response_model=PaginatedResponse[AdminBooking])
def list_all_bookings(
    status: Optional[BookingStatus] = Query(None),
    service_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    current_user: User = Depends(get_current_admin_user),
):
    """All bookings with the customer attached, newest first."""
    filters = BookingFilters(
        status=status.value if status else None,
        service_id=service_id,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
    )
    bookings, total = BookingService(db, cache).list(current_user, filters, page, limit)
    return PaginatedResponse(
        data=bookings,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )
