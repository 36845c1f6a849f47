"""
Validation schemas for user-supplied catalog, schedule and reservation data.
"""

from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.exceptions import InvalidInputError
from .domain.models import ReservationStatus, TimeOfDay, parse_date

ModelT = TypeVar("ModelT", bound=BaseModel)


def _check_time(value: str, end: bool = False) -> str:
    # Normalise "9:00" to "09:00"
    try:
        return str(TimeOfDay.parse_end(value) if end else TimeOfDay.parse(value))
    except InvalidInputError as exc:
        raise ValueError(str(exc)) from exc


def _check_date(value: str) -> str:
    try:
        return parse_date(value).isoformat()
    except InvalidInputError as exc:
        raise ValueError(str(exc)) from exc


class ServiceDraft(BaseModel):
    """Data required to add a service to the catalog."""
    name: str = Field(min_length=2)
    description: Optional[str] = None
    duration_minutes: int = Field(ge=15, le=480)
    price: float = Field(ge=0)
    provider_id: Optional[str] = None


class ServiceUpdate(BaseModel):
    """Partial change to a catalog entry; unset fields stay as they are."""
    name: Optional[str] = Field(default=None, min_length=2)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=15, le=480)
    price: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class UserDraft(BaseModel):
    name: str = Field(min_length=2)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class ScheduleDraft(BaseModel):
    """A recurring opening window for a service."""
    service_id: str = Field(min_length=1)
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return _check_time(value)

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, value: str) -> str:
        return _check_time(value, end=True)

    @model_validator(mode="after")
    def validate_order(self) -> "ScheduleDraft":
        """Ensure the window closes after it opens."""
        if TimeOfDay.parse_end(self.end_time) <= TimeOfDay.parse(self.start_time):
            raise ValueError("end_time must be later than start_time")
        return self


class ReservationRequest(BaseModel):
    """A booking attempt for a service at a date and start time."""
    service_id: str = Field(min_length=1)
    date: str
    start_time: str
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        return _check_date(value)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return _check_time(value)


class ReservationUpdate(BaseModel):
    status: Optional[ReservationStatus] = None
    notes: Optional[str] = None


class ReservationFilters(BaseModel):
    """Listing filters with pagination."""
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[ReservationStatus] = None
    service_id: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def validate_dates(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_date(value)


def validate_input(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """
    Validate ``data`` against ``model``.

    Raises:
        InvalidInputError: With every field error joined as ``field: message``
    """
    try:
        return model(**data)
    except ValidationError as exc:
        errors = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"])
            errors.append(f"{location}: {error['msg']}" if location else error["msg"])
        raise InvalidInputError(", ".join(errors)) from exc
