"""
Domain-specific exception hierarchy for the booking application.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BookedInterval


class RejectionReason(str, Enum):
    """Why a reservation or availability request was turned down."""

    SERVICE_UNAVAILABLE = "service_unavailable"
    OUTSIDE_SCHEDULE = "outside_schedule"
    CONFLICT = "conflict"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES = {
    RejectionReason.SERVICE_UNAVAILABLE: "Service not found or inactive",
    RejectionReason.OUTSIDE_SCHEDULE: "Requested time is outside the service schedule",
    RejectionReason.CONFLICT: "A reservation already exists at that time",
}


class BookingError(Exception):
    """Base class for all application-level errors."""


class InvalidInputError(BookingError, ValueError):
    """Raised when input has the wrong shape (bad time text, non-positive duration)."""


class ReservationRejected(BookingError):
    """
    Raised by the service layer for ordinary business-rule rejections.

    Carries the rejection reason and the HTTP-style status code a web layer
    would answer with.
    """

    def __init__(
        self,
        reason: RejectionReason,
        status_code: int = 400,
        conflicting: "BookedInterval | None" = None,
    ):
        super().__init__(reason.message)
        self.reason = reason
        self.status_code = status_code
        self.conflicting = conflicting


class NotFoundError(BookingError):
    """Raised when a referenced record does not exist."""


class PermissionDeniedError(BookingError):
    """Raised when the acting user may not perform an operation."""


class ScheduleConflictError(BookingError):
    """Raised when a new schedule window overlaps an existing active one."""


class AlreadyExistsError(BookingError):
    """Raised when a record with the same unique key is already stored."""


class ServiceInUseError(BookingError):
    """Raised when a service cannot be removed because it still has active reservations."""


class RateLimitExceeded(BookingError):
    """Raised when a client exceeded its request budget."""

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class StorageError(BookingError):
    """Raised when the persistence layer cannot be read or written."""


class ApiError(BookingError):
    """Raised when the remote booking API answers with an error or is unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(BookingError):
    """Raised when authentication or token handling fails."""
