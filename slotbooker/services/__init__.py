"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking import BookingService, Notifier, Page, ReservationStore
from .rate_limiter import FixedWindowRateLimiter, RateLimitResult
from .reminders import ReminderService, SweepResult

__all__ = [
    "BookingService",
    "FixedWindowRateLimiter",
    "Notifier",
    "Page",
    "RateLimitResult",
    "ReminderService",
    "ReservationStore",
    "SweepResult",
]
