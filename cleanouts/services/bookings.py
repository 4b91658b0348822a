"""
Booking lifecycle: create, reschedule/update, cancel.

Status moves along ``pending -> confirmed -> in_progress -> completed`` with
``pending | confirmed -> cancelled`` on the side; completed and cancelled are
terminal. Every mutation drops the availability cache entries for the dates it
touched and then notifies the booking owner.

Double booking is prevented per service: the service row is locked
(``SELECT ... FOR UPDATE``) before the overlap check and stays locked until the
booking is committed, so two requests for the same service are serialized.
"""

import logging
import random
import string
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from cleanouts.core.config import settings
from cleanouts.core.exceptions import (
    ConflictError,
    InvalidDateError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamError,
    ValidationError,
)
from cleanouts.models.booking import Booking, BookingStatus, TERMINAL_STATUSES
from cleanouts.models.service import Service
from cleanouts.models.user import User
from cleanouts.schemas.booking import BookingCreate, BookingUpdate
from cleanouts.services.availability import fetch_booked_intervals
from cleanouts.services.availability_cache import AvailabilityCache
from cleanouts.services.conflict_detector import BEYOND_BUSINESS_HOURS, Interval, check_slot
from cleanouts.services.notifications import notify
from cleanouts.utils.timeslots import (
    add_hours,
    business_close_minute,
    business_now,
    business_open_minute,
    format_time,
    minutes_of,
)

logger = logging.getLogger(__name__)

SLOT_TAKEN = "Time slot is already booked"

ALLOWED_TRANSITIONS = {
    BookingStatus.pending.value: {BookingStatus.confirmed.value, BookingStatus.cancelled.value},
    BookingStatus.confirmed.value: {BookingStatus.in_progress.value, BookingStatus.cancelled.value},
    BookingStatus.in_progress.value: {BookingStatus.completed.value},
    BookingStatus.completed.value: set(),
    BookingStatus.cancelled.value: set(),
}

RESCHEDULABLE_STATUSES = frozenset({BookingStatus.pending.value, BookingStatus.confirmed.value})


def calculate_total_price(service: Service, duration: int) -> Decimal:
    return Decimal(service.base_price) + Decimal(service.price_per_hour) * duration


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


@dataclass(frozen=True)
class BookingFilters:
    status: Optional[str] = None
    service_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class BookingService:
    def __init__(
        self,
        db: Session,
        cache: AvailabilityCache,
        now: Callable[[], datetime] = business_now,
    ):
        self.db = db
        self.cache = cache
        self.now = now

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _generate_booking_number(self) -> str:
        """Generate a unique 'CLN-XXXXXXXX' booking reference."""
        chars = string.ascii_uppercase + string.digits
        while True:
            number = "CLN-" + "".join(random.choices(chars, k=8))
            if not self.db.query(Booking.id).filter(Booking.booking_number == number).first():
                return number

    def _load_service(self, service_id: UUID, lock: bool = False) -> Service:
        query = self.db.query(Service).filter(Service.id == service_id)
        if lock:
            query = query.with_for_update()
        service = query.first()
        if not service:
            raise NotFoundError("Service not found")
        return service

    def _get_for_actor(self, booking_id: UUID, actor: User) -> Booking:
        """Load a booking the actor may see; other users' bookings look like 404s."""
        query = self.db.query(Booking).options(joinedload(Booking.service)).filter(Booking.id == booking_id)
        if not actor.is_admin:
            query = query.filter(Booking.user_id == actor.id)
        booking = query.first()
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def _validate_schedule(self, booking_date: date, start_time: time, duration: int) -> time:
        """Check date and business-hours rules; returns the computed end time."""
        now = self.now()
        today = now.date()
        if booking_date < today:
            raise InvalidDateError("Cannot book for past dates.", details={"field": "booking_date"})
        if booking_date > today + timedelta(days=settings.MAX_ADVANCE_BOOKING_DAYS):
            raise ValidationError(
                f"Cannot book more than {settings.MAX_ADVANCE_BOOKING_DAYS} days in advance.",
                details={"field": "booking_date"},
            )
        if booking_date == today and start_time <= now.time():
            raise ValidationError("Start time has already passed.", details={"field": "start_time"})
        if not settings.MIN_DURATION_HOURS <= duration <= settings.MAX_DURATION_HOURS:
            raise ValidationError(
                f"Duration must be between {settings.MIN_DURATION_HOURS} and "
                f"{settings.MAX_DURATION_HOURS} hours",
                details={"field": "duration"},
            )

        end_time = add_hours(start_time, duration)
        start_minute = minutes_of(start_time)
        if (
            start_minute < business_open_minute()
            or end_time is None
            or start_minute + duration * 60 > business_close_minute()
        ):
            raise ValidationError(
                "Booking must be within business hours.",
                code="OUTSIDE_BUSINESS_HOURS",
                details={"reason": BEYOND_BUSINESS_HOURS},
            )
        return end_time

    def _ensure_slot_free(
        self,
        service_id: UUID,
        booking_date: date,
        start_time: time,
        duration: int,
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        booked = fetch_booked_intervals(self.db, [booking_date], service_id, exclude_booking_id)
        check = check_slot(
            Interval.from_start(start_time, duration),
            booked.get(booking_date, []),
            business_close_minute(),
        )
        if check.conflicting_bookings:
            raise ConflictError(SLOT_TAKEN, details={"conflicting_bookings": check.conflicting_bookings})

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Database error while trying to %s", action)
            raise UpstreamError(f"Failed to {action}") from e

    def _invalidate(self, dates: Iterable[date], service_id: UUID) -> None:
        for d in set(dates):
            self.cache.invalidate(d, service_id)

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    def get(self, booking_id: UUID, actor: User) -> Booking:
        return self._get_for_actor(booking_id, actor)

    def list(
        self,
        actor: User,
        filters: BookingFilters,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Booking], int]:
        """Newest first. Non-admins only ever see their own bookings."""
        query = self.db.query(Booking).options(joinedload(Booking.service), joinedload(Booking.user))

        if actor.is_admin:
            if filters.user_id:
                query = query.filter(Booking.user_id == filters.user_id)
        else:
            query = query.filter(Booking.user_id == actor.id)

        if filters.status:
            query = query.filter(Booking.status == filters.status)
        if filters.service_id:
            query = query.filter(Booking.service_id == filters.service_id)
        if filters.date_from:
            query = query.filter(Booking.booking_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Booking.booking_date <= filters.date_to)

        total = query.count()
        bookings = (
            query.order_by(Booking.created_at.desc(), Booking.booking_date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return bookings, total

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------

    def create(self, data: BookingCreate, actor: User) -> Booking:
        service = self._load_service(data.service_id, lock=True)
        if not service.is_active:
            raise NotFoundError("Service not found")

        end_time = self._validate_schedule(data.booking_date, data.start_time, data.duration)
        self._ensure_slot_free(service.id, data.booking_date, data.start_time, data.duration)

        booking = Booking(
            booking_number=self._generate_booking_number(),
            user_id=actor.id,
            service_id=service.id,
            booking_date=data.booking_date,
            start_time=data.start_time,
            end_time=end_time,
            duration=data.duration,
            total_price=calculate_total_price(service, data.duration),
            status=BookingStatus.pending.value,
            notes=data.notes,
            customer_info=data.customer_info.model_dump(mode="json"),
        )
        self.db.add(booking)
        self._commit("create booking")
        self.db.refresh(booking)
        logger.info(
            "Created booking %s for service %s on %s at %s",
            booking.booking_number, service.id, booking.booking_date, format_time(booking.start_time),
        )

        self._invalidate([booking.booking_date], service.id)
        notify(
            self.db,
            actor.id,
            "Booking Created Successfully",
            f"Your booking for {service.name} on {booking.booking_date.isoformat()} at "
            f"{format_time(booking.start_time)} has been created and is pending confirmation.",
            type="success",
            reference_id=booking.id,
        )
        return booking

    # -----------------------------------------------------------------------
    # Update
    # -----------------------------------------------------------------------

    def update(self, booking_id: UUID, data: BookingUpdate, actor: User) -> Booking:
        booking = self._get_for_actor(booking_id, actor)
        previous_status = booking.status
        previous_date = booking.booking_date

        if previous_status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError("Cannot update completed or cancelled bookings")

        if not actor.is_admin:
            if data.status is not None or data.payment_status is not None:
                raise PermissionDeniedError("Only administrators can change booking or payment status")
            if previous_status != BookingStatus.pending.value:
                raise InvalidStateTransitionError(
                    "Only pending bookings can be changed. Please contact support."
                )

        new_status = data.status.value if data.status is not None else previous_status
        status_changed = new_status != previous_status
        if status_changed and not can_transition(previous_status, new_status):
            raise InvalidStateTransitionError(
                f"Cannot change booking status from '{previous_status}' to '{new_status}'",
                details={"from": previous_status, "to": new_status},
            )

        if data.reschedules:
            if previous_status not in RESCHEDULABLE_STATUSES:
                raise InvalidStateTransitionError(
                    f"Cannot reschedule a booking that is {previous_status.replace('_', ' ')}"
                )
            service = self._load_service(booking.service_id, lock=True)
            booking_date = data.booking_date or booking.booking_date
            start_time = data.start_time or booking.start_time
            duration = data.duration or booking.duration

            end_time = self._validate_schedule(booking_date, start_time, duration)
            self._ensure_slot_free(service.id, booking_date, start_time, duration, exclude_booking_id=booking.id)

            booking.booking_date = booking_date
            booking.start_time = start_time
            booking.end_time = end_time
            booking.duration = duration
            booking.total_price = calculate_total_price(service, duration)

        if status_changed:
            booking.status = new_status
            if new_status == BookingStatus.cancelled.value:
                booking.cancelled_at = datetime.now(timezone.utc)
        if data.payment_status is not None:
            booking.payment_status = data.payment_status.value
        if "notes" in data.model_fields_set:
            booking.notes = data.notes

        self._commit("update booking")
        self.db.refresh(booking)
        logger.info("Updated booking %s (status %s -> %s)", booking.booking_number, previous_status, booking.status)

        self._invalidate([previous_date, booking.booking_date], booking.service_id)

        service_name = booking.service.name if booking.service else "your service"
        if status_changed:
            if new_status == BookingStatus.confirmed.value:
                message = f"Your booking for {service_name} has been confirmed!"
            elif new_status == BookingStatus.completed.value:
                message = (
                    f"Your booking for {service_name} has been completed. "
                    "Thank you for choosing our service!"
                )
            else:
                message = f"Your booking status has been updated to {new_status.replace('_', ' ')}."
        elif data.reschedules:
            message = (
                "Your booking details have been updated. New date/time: "
                f"{booking.booking_date.isoformat()} at {format_time(booking.start_time)}."
            )
        else:
            message = "Your booking has been updated."

        notify(
            self.db,
            booking.user_id,
            "Booking Updated",
            message,
            type="success" if new_status == BookingStatus.confirmed.value and status_changed else "info",
            reference_id=booking.id,
        )
        return booking

    # -----------------------------------------------------------------------
    # Cancel (soft delete)
    # -----------------------------------------------------------------------

    def cancel(self, booking_id: UUID, actor: User) -> Booking:
        booking = self._get_for_actor(booking_id, actor)

        if booking.status == BookingStatus.cancelled.value:
            raise InvalidStateTransitionError("Booking is already cancelled", code="ALREADY_CANCELLED")
        if booking.status == BookingStatus.completed.value:
            raise InvalidStateTransitionError("Cannot cancel completed bookings")
        if not can_transition(booking.status, BookingStatus.cancelled.value):
            raise InvalidStateTransitionError(
                f"Cannot cancel a booking that is {booking.status.replace('_', ' ')}"
            )

        booking.status = BookingStatus.cancelled.value
        booking.cancelled_at = datetime.now(timezone.utc)
        self._commit("cancel booking")
        self.db.refresh(booking)
        logger.info("Cancelled booking %s", booking.booking_number)

        self._invalidate([booking.booking_date], booking.service_id)

        service_name = booking.service.name if booking.service else "your service"
        notify(
            self.db,
            booking.user_id,
            "Booking Cancelled",
            f"Your booking for {service_name} on {booking.booking_date.isoformat()} has been cancelled.",
            type="warning",
            reference_id=booking.id,
        )
        return booking
