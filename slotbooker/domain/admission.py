"""
Reservation admission check: schedule containment followed by a conflict scan.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .exceptions import RejectionReason
from .models import BookedInterval, ScheduleWindow
from .slot_calculator import overlaps, validate_duration


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of ``can_book``; ``reason`` is set only when rejected."""
    accepted: bool
    reason: Optional[RejectionReason] = None
    conflicting: Optional[BookedInterval] = None

    def __bool__(self) -> bool:
        return self.accepted


ACCEPTED = AdmissionDecision(accepted=True)


def can_book(
    proposed: BookedInterval,
    duration_minutes: int,
    schedules: Iterable[ScheduleWindow],
    day_of_week: int,
    existing: Iterable[BookedInterval],
) -> AdmissionDecision:
    """
    Decide whether ``proposed`` may be booked.

    Only the start time has to fall inside an active window of the weekday;
    ``proposed.end`` is the caller's ``start + duration`` and is not checked
    against the window's closing time. Existing intervals must already be
    filtered to active reservations of the same service and date.
    """
    validate_duration(duration_minutes)

    in_schedule = any(
        window.is_active
        and window.day_of_week == day_of_week
        and window.contains_start(proposed.start)
        for window in schedules
    )
    if not in_schedule:
        return AdmissionDecision(accepted=False, reason=RejectionReason.OUTSIDE_SCHEDULE)

    for interval in existing:
        if overlaps(proposed, interval):
            return AdmissionDecision(
                accepted=False,
                reason=RejectionReason.CONFLICT,
                conflicting=interval,
            )

    return ACCEPTED
