"""
Interval conflict detection for booking slots.

Everything here is pure: intervals are half-open ``[start, end)`` ranges in
minutes since midnight, so a booking that ends exactly when another starts is
not a conflict. Candidate intervals may run past midnight (end > 1440); those
are caught by the business-hours check before any overlap test.
"""

from dataclasses import dataclass
from datetime import time
from typing import Iterable, NamedTuple, Optional

from cleanouts.utils.timeslots import minutes_of

BEYOND_BUSINESS_HOURS = "Extends beyond business hours"
ALREADY_BOOKED = "Time slot already booked"


class Interval(NamedTuple):
    start: int
    end: int

    @classmethod
    def from_times(cls, start: time, end: time) -> "Interval":
        return cls(minutes_of(start), minutes_of(end))

    @classmethod
    def from_start(cls, start: time, duration_hours: int) -> "Interval":
        begin = minutes_of(start)
        return cls(begin, begin + duration_hours * 60)


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    reason: Optional[str] = None
    conflicting_bookings: int = 0


def intervals_overlap(a: Interval, b: Interval) -> bool:
    """[a1, a2) and [b1, b2) overlap iff a1 < b2 and b1 < a2."""
    return a.start < b.end and b.start < a.end


def count_conflicts(candidate: Interval, existing: Iterable[Interval]) -> int:
    return sum(1 for other in existing if intervals_overlap(candidate, other))


def check_slot(
    candidate: Interval,
    existing: Iterable[Interval],
    close_minute: int,
) -> SlotCheck:
    """
    Decide whether ``candidate`` can be booked.

    Ending exactly at close is allowed. When several bookings collide, all of
    them are counted.
    """
    if candidate.end > close_minute:
        return SlotCheck(available=False, reason=BEYOND_BUSINESS_HOURS)

    conflicts = count_conflicts(candidate, existing)
    if conflicts:
        return SlotCheck(available=False, reason=ALREADY_BOOKED, conflicting_bookings=conflicts)
    return SlotCheck(available=True)
