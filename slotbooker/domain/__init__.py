"""
Domain layer - Pure business logic without external dependencies.
"""

from .admission import AdmissionDecision, can_book
from .exceptions import RejectionReason
from .models import (
    ACTIVE_STATUSES,
    BookedInterval,
    DayAvailability,
    Reservation,
    ReservationStatus,
    ScheduleWindow,
    Service,
    Slot,
    TimeOfDay,
    User,
    UserRole,
)
from .slot_calculator import SlotCalculator, overlaps

__all__ = [
    "ACTIVE_STATUSES",
    "AdmissionDecision",
    "BookedInterval",
    "DayAvailability",
    "RejectionReason",
    "Reservation",
    "ReservationStatus",
    "ScheduleWindow",
    "Service",
    "Slot",
    "SlotCalculator",
    "TimeOfDay",
    "User",
    "UserRole",
    "can_book",
    "overlaps",
]
