"""
Core business logic for calculating bookable time slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from typing import Iterable, List, Sequence

from .exceptions import InvalidInputError
from .models import BookedInterval, ScheduleWindow, Slot, TimeOfDay

# Candidate slots start every 30 minutes, or every ``duration`` for shorter services
SLOT_STRIDE_MINUTES = 30


def overlaps(a: BookedInterval, b: BookedInterval) -> bool:
    """Half-open intersection test; intervals that only touch do not overlap."""
    return a.start < b.end and b.start < a.end


def validate_duration(duration_minutes: int) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidInputError(f"Duration must be an integer, got {duration_minutes!r}")
    if duration_minutes <= 0:
        raise InvalidInputError(f"Duration must be greater than zero, got {duration_minutes}")
    return duration_minutes


class SlotCalculator:
    """
    Produces candidate slots of a fixed duration for a service's schedule.

    Algorithm:
    1. Walk a cursor from the window's start in strides of min(30, duration)
    2. Emit [cursor, cursor + duration) while it still fits in the window
    3. Flag each slot unavailable if it overlaps any booked interval
    4. Merge the slots of all windows of the day and sort by start time

    Slots are staggered rather than back-to-back, so a 60 minute service in
    a 09:00-11:00 window offers 09:00, 09:30 and 10:00 as start times.
    """

    def __init__(self, stride_minutes: int = SLOT_STRIDE_MINUTES):
        self.stride_minutes = validate_duration(stride_minutes)

    def generate_slots(
        self,
        window: ScheduleWindow,
        duration_minutes: int,
        booked: Sequence[BookedInterval] = ()
    ) -> List[Slot]:
        """
        Generate the candidate slots for a single schedule window.

        Args:
            window: Open interval of the service
            duration_minutes: Fixed length of every slot
            booked: Occupied intervals on the target date

        Returns:
            Slots in ascending start order; empty if none fits

        Raises:
            InvalidInputError: If the duration is not a positive integer
        """
        duration = validate_duration(duration_minutes)
        step = min(self.stride_minutes, duration)
        booked = list(booked)

        slots: List[Slot] = []
        cursor = window.start.minutes

        while cursor + duration <= window.end.minutes:
            candidate = BookedInterval(TimeOfDay(cursor), TimeOfDay(cursor + duration))
            is_taken = any(overlaps(candidate, interval) for interval in booked)

            slots.append(
                Slot(start=candidate.start, end=candidate.end, available=not is_taken)
            )
            cursor += step

        return slots

    def generate_day_slots(
        self,
        windows: Iterable[ScheduleWindow],
        duration_minutes: int,
        booked: Sequence[BookedInterval] = (),
        day_of_week: int | None = None
    ) -> List[Slot]:
        """
        Merge the slots of every active window (optionally of one weekday).

        The result is sorted ascending by start time. The sort is stable, so
        equal start times from different windows keep window order.
        """
        booked = list(booked)
        all_slots: List[Slot] = []

        for window in windows:
            if not window.is_active:
                continue
            if day_of_week is not None and window.day_of_week != day_of_week:
                continue
            all_slots.extend(self.generate_slots(window, duration_minutes, booked))

        return sorted(all_slots, key=lambda slot: slot.start.minutes)
