import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_current_user
from cleanouts.core.exceptions import ConflictError, NotFoundError, ValidationError
from cleanouts.models.booking import Booking, BookingStatus
from cleanouts.models.review import ServiceReview
from cleanouts.models.user import User
from cleanouts.schemas.common import ErrorResponse, PaginatedResponse
from cleanouts.schemas.review import Review as ReviewSchema, ReviewCreate
from cleanouts.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


@router.post("", response_model=ReviewSchema, status_code=status.HTTP_201_CREATED)
def submit_review(
    data: ReviewCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Rate the service delivered by one of the caller's bookings.

    Rules:
    - The booking must belong to the caller (404 otherwise).
    - The booking must be completed.
    - One review per booking (409 if it was already reviewed).
    """
    booking = (
        db.query(Booking)
        .filter(Booking.id == data.booking_id, Booking.user_id == current_user.id)
        .first()
    )
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.status != BookingStatus.completed.value:
        raise ValidationError("Can only review completed bookings", code="BOOKING_NOT_COMPLETED")

    if db.query(ServiceReview).filter(ServiceReview.booking_id == booking.id).first():
        raise ConflictError("Review already exists for this booking", code="REVIEW_EXISTS")

    review = ServiceReview(
        user_id=current_user.id,
        booking_id=booking.id,
        service_id=booking.service_id,
        rating=data.rating,
        comment=data.comment,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Review already exists for this booking", code="REVIEW_EXISTS")
    db.refresh(review)
    logger.info("Review %s for booking %s by %s", review.id, booking.id, current_user.id)

    notify(
        db,
        current_user.id,
        "Review Submitted",
        f"Thank you for reviewing {review.service.name}! Your feedback helps us improve our services.",
        type="success",
        reference_id=booking.id,
    )
    return review


@router.get("", response_model=PaginatedResponse[ReviewSchema])
def list_reviews(
    service_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    """Return paginated reviews, newest first. No authentication required."""
    query = db.query(ServiceReview)
    if service_id:
        query = query.filter(ServiceReview.service_id == service_id)
    if user_id:
        query = query.filter(ServiceReview.user_id == user_id)
    if min_rating:
        query = query.filter(ServiceReview.rating >= min_rating)

    total = query.count()
    reviews = (
        query.order_by(ServiceReview.created_at.desc(), ServiceReview.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=reviews,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )
