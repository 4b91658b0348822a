import logging
from collections import defaultdict
from datetime import date, datetime, time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from cleanouts.core.config import settings
from cleanouts.core.exceptions import InvalidDateError, NotFoundError, TooManyDatesError, ValidationError
from cleanouts.models.booking import Booking, BookingStatus
from cleanouts.models.service import Service
from cleanouts.schemas.availability import (
    AvailabilityResult,
    AvailabilitySummary,
    BulkAvailabilityResult,
    BulkPerformance,
    DateAvailability,
    ServiceInfo,
    TimeSlotAvailability,
)
from cleanouts.services.availability_cache import (
    AvailabilityCache,
    availability_key,
    bulk_availability_key,
)
from cleanouts.services.conflict_detector import Interval, check_slot
from cleanouts.utils.timeslots import (
    business_close_minute,
    business_now,
    business_time_slots,
    format_time,
)

logger = logging.getLogger(__name__)

PAST_DATE = "Past date"
SLOT_STARTED = "Slot has already started"
NO_SLOTS_LEFT = "Fully booked"


def availability_percentage(available: int, total: int) -> int:
    """Round-half-up percentage; 0 when there are no slots at all."""
    if total <= 0:
        return 0
    return (available * 200 + total) // (2 * total)


def fetch_booked_intervals(
    db: Session,
    dates: Sequence[date],
    service_id: Optional[UUID] = None,
    exclude_booking_id: Optional[UUID] = None,
) -> Dict[date, List[Interval]]:
    """
    Non-cancelled booking intervals for every date in ``dates``, in one query.

    Conflicts are scoped per service whenever a service id is given.
    """
    if not dates:
        return {}

    query = db.query(Booking.booking_date, Booking.start_time, Booking.end_time).filter(
        Booking.booking_date.in_(list(dates)),
        Booking.status != BookingStatus.cancelled.value,
    )
    if service_id:
        query = query.filter(Booking.service_id == service_id)
    if exclude_booking_id:
        query = query.filter(Booking.id != exclude_booking_id)

    by_date: Dict[date, List[Interval]] = defaultdict(list)
    for booking_date, start_time, end_time in query.all():
        by_date[booking_date].append(Interval.from_times(start_time, end_time))
    return by_date


class AvailabilityService:
    """
    Slot-by-slot availability for a date, or a summary across many dates.

    Results are cached in the injected ``AvailabilityCache``; ``now`` is the
    business-timezone clock and can be replaced in tests.
    """

    def __init__(
        self,
        db: Session,
        cache: AvailabilityCache,
        now: Callable[[], datetime] = business_now,
        slots: Optional[Sequence[time]] = None,
    ):
        self.db = db
        self.cache = cache
        self.now = now
        self.slots = list(slots) if slots is not None else business_time_slots()

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _validate_duration(self, duration: int) -> None:
        if not settings.MIN_DURATION_HOURS <= duration <= settings.MAX_DURATION_HOURS:
            raise ValidationError(
                f"Duration must be between {settings.MIN_DURATION_HOURS} and "
                f"{settings.MAX_DURATION_HOURS} hours",
                details={"field": "duration"},
            )

    def _load_service(self, service_id: UUID) -> Service:
        service = self.db.query(Service).filter(Service.id == service_id).first()
        if not service:
            raise NotFoundError("Service not found")
        return service

    def clock_marker(self, now: datetime) -> str:
        """Business date plus the latest slot that has already started."""
        started = [slot for slot in self.slots if slot <= now.time()]
        return f"{now.date().isoformat()}@{format_time(started[-1]) if started else 'open'}"

    def calculate_date_availability(
        self,
        booking_date: date,
        duration: int,
        booked: Iterable[Interval],
        now: Optional[datetime] = None,
    ) -> Tuple[List[TimeSlotAvailability], AvailabilitySummary]:
        booked = list(booked)
        close = business_close_minute()
        today = now.date() if now else None

        availability: List[TimeSlotAvailability] = []
        for slot in self.slots:
            if today == booking_date and slot <= now.time():
                availability.append(
                    TimeSlotAvailability(time=format_time(slot), available=False, reason=SLOT_STARTED)
                )
                continue

            check = check_slot(Interval.from_start(slot, duration), booked, close)
            availability.append(
                TimeSlotAvailability(
                    time=format_time(slot),
                    available=check.available,
                    reason=check.reason,
                    conflicting_bookings=check.conflicting_bookings,
                )
            )

        total = len(availability)
        available = sum(1 for s in availability if s.available)
        summary = AvailabilitySummary(
            total_slots=total,
            available_slots=available,
            booked_slots=total - available,
            availability_percentage=availability_percentage(available, total),
        )
        return availability, summary

    # -----------------------------------------------------------------------
    # Single date
    # -----------------------------------------------------------------------

    def get_availability(
        self,
        booking_date: date,
        service_id: Optional[UUID] = None,
        duration: int = 2,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Tuple[AvailabilityResult, bool]:
        """Returns ``(result, cached)``."""
        self._validate_duration(duration)
        now = self.now()
        if booking_date < now.date():
            raise InvalidDateError("Cannot check availability for past dates")

        as_of = self.clock_marker(now) if booking_date == now.date() else None
        key = availability_key(booking_date, service_id, duration, exclude_booking_id, as_of)
        hit = self.cache.get(key)
        if hit is not None:
            return hit, True

        service_info = None
        if service_id:
            service_info = ServiceInfo.model_validate(self._load_service(service_id))

        booked = fetch_booked_intervals(self.db, [booking_date], service_id, exclude_booking_id)
        availability, summary = self.calculate_date_availability(
            booking_date, duration, booked.get(booking_date, []), now
        )

        result = AvailabilityResult(
            date=booking_date,
            service_id=service_id,
            duration=duration,
            availability=availability,
            summary=summary,
            service_info=service_info,
        )
        self.cache.set(key, result)
        return result, False

    # -----------------------------------------------------------------------
    # Bulk
    # -----------------------------------------------------------------------

    def get_bulk_availability(
        self,
        dates: Sequence[date],
        service_id: Optional[UUID] = None,
        duration: int = 2,
    ) -> Tuple[BulkAvailabilityResult, bool]:
        """
        Day-level availability for up to MAX_BULK_DATES dates.

        Past dates are answered without touching the database and every other
        date shares a single bookings query. Output is chronological whatever
        the input order. Returns ``(result, cached)``.
        """
        if not dates:
            raise ValidationError("Dates array is required", details={"field": "dates"})
        if len(dates) > settings.MAX_BULK_DATES:
            raise TooManyDatesError(
                f"Cannot check more than {settings.MAX_BULK_DATES} dates at once",
                details={"max_dates": settings.MAX_BULK_DATES, "requested": len(dates)},
            )
        self._validate_duration(duration)

        now = self.now()
        key = bulk_availability_key(dates, service_id, duration, self.clock_marker(now))
        hit = self.cache.get(key)
        if hit is not None:
            return hit, True

        if service_id:
            self._load_service(service_id)

        today = now.date()
        unique_dates = sorted(set(dates))
        past_dates = [d for d in unique_dates if d < today]
        valid_dates = [d for d in unique_dates if d >= today]
        total_slots = len(self.slots)

        results: List[DateAvailability] = [
            DateAvailability(
                date=d,
                available=False,
                reason=PAST_DATE,
                available_slots=0,
                total_slots=total_slots,
                availability_percentage=0,
            )
            for d in past_dates
        ]

        if valid_dates:
            booked = fetch_booked_intervals(self.db, valid_dates, service_id)
            for d in valid_dates:
                _, summary = self.calculate_date_availability(d, duration, booked.get(d, []), now)
                results.append(
                    DateAvailability(
                        date=d,
                        available=summary.available_slots > 0,
                        reason=None if summary.available_slots else NO_SLOTS_LEFT,
                        available_slots=summary.available_slots,
                        total_slots=summary.total_slots,
                        availability_percentage=summary.availability_percentage,
                    )
                )

        results.sort(key=lambda r: r.date)
        result = BulkAvailabilityResult(
            dates=results,
            performance=BulkPerformance(
                total_dates=len(dates),
                valid_dates=len(valid_dates),
                past_dates=len(past_dates),
            ),
        )
        self.cache.set(key, result)
        logger.debug(
            "Bulk availability for %d dates (%d past) service=%s",
            len(unique_dates), len(past_dates), service_id or "all",
        )
        return result, False
