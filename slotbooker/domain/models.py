"""
Domain models for time-of-day arithmetic, schedules, slots and reservations.
"""

import re
from dataclasses import dataclass, field
from datetime import date as _date
from enum import Enum
from typing import FrozenSet, List, Optional

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidInputError

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """
    Wall-clock time with minute granularity, stored as minutes since midnight.

    Valid values are 0-1439. The single value 1440 ("24:00") is accepted as
    an end boundary so a window or booking may close exactly at midnight.
    """
    minutes: int

    def __post_init__(self):
        if not 0 <= self.minutes <= MINUTES_PER_DAY:
            raise InvalidInputError(
                f"Time of day must be between 00:00 and 24:00, got {self.minutes} minutes"
            )

    @classmethod
    def parse(cls, text: str) -> "TimeOfDay":
        """Parse ``H:MM`` or ``HH:MM`` 24-hour text."""
        match = _TIME_PATTERN.match(text.strip()) if isinstance(text, str) else None
        if not match:
            raise InvalidInputError(f"Invalid time format (expected HH:MM): {text!r}")
        return cls(int(match.group(1)) * 60 + int(match.group(2)))

    @classmethod
    def parse_end(cls, text: str) -> "TimeOfDay":
        """Parse an end boundary; like ``parse`` but also accepts ``24:00``."""
        if isinstance(text, str) and text.strip() == "24:00":
            return cls(MINUTES_PER_DAY)
        return cls.parse(text)

    @classmethod
    def of(cls, hour: int, minute: int = 0) -> "TimeOfDay":
        return cls(hour * 60 + minute)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def add_minutes(self, minutes: int) -> "TimeOfDay":
        """Return a new time shifted by ``minutes``; the day boundary is not crossed."""
        total = self.minutes + minutes
        if total > MINUTES_PER_DAY:
            raise InvalidInputError(f"{self} plus {minutes} minutes runs past midnight")
        return TimeOfDay(total)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def _as_time(value, end: bool = False) -> TimeOfDay:
    if isinstance(value, TimeOfDay):
        return value
    return TimeOfDay.parse_end(value) if end else TimeOfDay.parse(value)


@dataclass(frozen=True)
class BookedInterval:
    """
    Half-open occupied span ``[start, end)`` on a single date.

    Invariant: start must be before end.
    """
    start: TimeOfDay
    end: TimeOfDay

    def __post_init__(self):
        object.__setattr__(self, "start", _as_time(self.start))
        object.__setattr__(self, "end", _as_time(self.end, end=True))
        if self.start >= self.end:
            raise InvalidInputError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end.minutes - self.start.minutes

    def overlaps(self, other: "BookedInterval") -> bool:
        """Check if this interval overlaps with another. Touching endpoints do not."""
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class ScheduleWindow:
    """
    One recurring open interval of a service on a given weekday.

    ``day_of_week`` uses 0=Sunday through 6=Saturday.
    """
    day_of_week: int
    start: TimeOfDay
    end: TimeOfDay
    is_active: bool = True
    id: Optional[str] = None
    service_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "start", _as_time(self.start))
        object.__setattr__(self, "end", _as_time(self.end, end=True))
        if not 0 <= self.day_of_week <= 6:
            raise InvalidInputError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")
        if self.end <= self.start:
            raise InvalidInputError(
                f"Schedule window end {self.end} must be after start {self.start}"
            )

    def contains_start(self, time: TimeOfDay) -> bool:
        """True when ``time`` falls inside ``[start, end)``."""
        return self.start <= time < self.end

    def as_interval(self) -> BookedInterval:
        return BookedInterval(self.start, self.end)


@dataclass(frozen=True)
class Slot:
    """A candidate booking unit of the service's fixed duration."""
    start: TimeOfDay
    end: TimeOfDay
    available: bool

    def to_dict(self) -> dict:
        return {
            "startTime": str(self.start),
            "endTime": str(self.end),
            "isAvailable": self.available,
        }


@dataclass(frozen=True)
class DayAvailability:
    """All candidate slots of a service for one calendar date."""
    date: Date
    slots: List[Slot] = field(default_factory=list)

    @property
    def available_slots(self) -> List[Slot]:
        return [slot for slot in self.slots if slot.available]

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "slots": [slot.to_dict() for slot in self.slots],
        }


class UserRole(str, Enum):
    CLIENT = "CLIENT"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Only these statuses occupy time on the calendar
ACTIVE_STATUSES: FrozenSet[ReservationStatus] = frozenset(
    {ReservationStatus.PENDING, ReservationStatus.CONFIRMED}
)


class NotificationType(str, Enum):
    RESERVATION_CONFIRMED = "RESERVATION_CONFIRMED"
    RESERVATION_CANCELLED = "RESERVATION_CANCELLED"
    RESERVATION_REMINDER = "RESERVATION_REMINDER"
    SCHEDULE_CHANGE = "SCHEDULE_CHANGE"
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    role: UserRole = UserRole.CLIENT
    phone: Optional[str] = None


@dataclass(frozen=True)
class Service:
    """A bookable offering with a fixed duration."""
    id: str
    name: str
    duration_minutes: int
    price: float
    provider_id: str
    description: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class Reservation:
    """A booked time span of a service on a date."""
    id: str
    user_id: str
    service_id: str
    date: Date
    start: TimeOfDay
    end: TimeOfDay
    status: ReservationStatus = ReservationStatus.PENDING
    total_price: float = 0.0
    notes: Optional[str] = None
    created_at: Optional[DateTime] = None

    @property
    def interval(self) -> BookedInterval:
        return BookedInterval(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def format_display(self) -> str:
        """Format: YYYY-MM-DD HH:MM-HH:MM [STATUS]"""
        return f"{self.date.isoformat()} {self.start}-{self.end} [{self.status.value}]"


@dataclass(frozen=True)
class Notification:
    user_id: str
    type: NotificationType
    title: str
    message: str
    reservation_id: Optional[str] = None


def day_of_week(day: _date) -> int:
    """Weekday index with 0=Sunday through 6=Saturday."""
    return day.isoweekday() % 7


def parse_date(text: str) -> Date:
    """
    Parse an ISO-8601 calendar date (a full timestamp is accepted and truncated).

    Raises:
        InvalidInputError: If the text is not a date
    """
    try:
        parsed = pendulum.parse(text)
    except (ValueError, TypeError) as exc:
        raise InvalidInputError(f"Invalid date (expected YYYY-MM-DD): {text!r}") from exc

    if isinstance(parsed, DateTime):
        return parsed.date()
    if isinstance(parsed, Date):
        return parsed

    raise InvalidInputError(f"Invalid date (expected YYYY-MM-DD): {text!r}")
