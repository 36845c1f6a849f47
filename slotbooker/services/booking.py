"""
Application services for browsing availability and managing reservations.

The service coordinates the persistence provider and delegates the actual
slot and conflict decisions to the domain-level ``SlotCalculator`` and
``can_book``. The store is any object satisfying ``ReservationStore``.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from typing import Dict, Generic, Iterable, List, Optional, Protocol, TypeVar

import pendulum
from pendulum import Date

from ..domain.admission import can_book
from ..domain.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    RejectionReason,
    ReservationRejected,
    ScheduleConflictError,
    ServiceInUseError,
)
from ..domain.models import (
    ACTIVE_STATUSES,
    BookedInterval,
    DayAvailability,
    Notification,
    NotificationType,
    Reservation,
    ReservationStatus,
    ScheduleWindow,
    Service,
    TimeOfDay,
    User,
    UserRole,
    day_of_week,
    parse_date,
)
from ..domain.slot_calculator import SlotCalculator, overlaps
from ..schemas import (
    ReservationFilters,
    ReservationRequest,
    ReservationUpdate,
    ScheduleDraft,
    ServiceDraft,
    ServiceUpdate,
    UserDraft,
    validate_input,
)
from .rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReservationStore(Protocol):
    """Protocol describing the persistence behaviour needed by the services."""

    async def get_user(self, user_id: str) -> Optional[User]:
        ...

    async def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    async def add_user(self, user: User) -> User:
        ...

    async def get_service(self, service_id: str) -> Optional[Service]:
        ...

    async def list_services(self, active_only: bool = False) -> List[Service]:
        ...

    async def add_service(self, service: Service) -> Service:
        ...

    async def update_service(self, service: Service) -> Service:
        ...

    async def delete_service_if_unbooked(self, service_id: str) -> int:
        """Delete unless active reservations exist; return how many block it."""

    async def list_schedules(self, service_id: Optional[str] = None, active_only: bool = True) -> List[ScheduleWindow]:
        ...

    async def add_schedule(self, window: ScheduleWindow) -> ScheduleWindow:
        ...

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        ...

    async def list_reservations(
        self,
        service_id: Optional[str] = None,
        date: Optional[Date] = None,
        statuses: Optional[Iterable[ReservationStatus]] = None,
    ) -> List[Reservation]:
        ...

    async def insert_reservation_if_free(self, reservation: Reservation) -> Optional[Reservation]:
        """Persist unless an active overlapping reservation exists; return the conflict."""

    async def update_reservation(self, reservation: Reservation) -> Reservation:
        ...

    async def delete_reservation(self, reservation_id: str) -> bool:
        ...

    async def update_statuses(self, changes: Dict[str, ReservationStatus]) -> int:
        ...


class Notifier(Protocol):
    """Where user notifications and availability changes are sent."""

    def notify(self, notification: Notification) -> None:
        ...

    def availability_changed(self, service_id: str, date: Date) -> None:
        ...


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def new_id() -> str:
    return uuid.uuid4().hex


class BookingService:
    """
    Orchestrates availability lookups and reservation admission.

    Collaborators are injected: any ``ReservationStore``, an optional rate
    limiter for booking attempts and an optional ``Notifier``.
    """

    def __init__(
        self,
        store: ReservationStore,
        slot_calculator: SlotCalculator | None = None,
        rate_limiter: FixedWindowRateLimiter | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._store = store
        self._slot_calculator = slot_calculator or SlotCalculator()
        self._rate_limiter = rate_limiter
        self._notifier = notifier

    async def get_day_availability(self, service_id: str, date: Date | str) -> DayAvailability:
        """
        Compute every candidate slot of a service on ``date``.

        Raises:
            ReservationRejected: If the service is missing or inactive (404)
            InvalidInputError: If ``date`` cannot be parsed
        """
        day = parse_date(date) if isinstance(date, str) else date

        service = await self._store.get_service(service_id)
        if service is None or not service.is_active:
            raise ReservationRejected(RejectionReason.SERVICE_UNAVAILABLE, status_code=404)

        weekday = day_of_week(day)
        windows = [
            w for w in await self._store.list_schedules(service_id, active_only=True)
            if w.day_of_week == weekday
        ]
        if not windows:
            return DayAvailability(date=day, slots=[])

        booked = await self._booked_intervals(service_id, day)
        slots = self._slot_calculator.generate_day_slots(
            windows, service.duration_minutes, booked, day_of_week=weekday
        )
        return DayAvailability(date=day, slots=slots)

    async def create_reservation(
        self,
        *,
        user_id: str,
        service_id: str,
        date: str,
        start_time: str,
        notes: str | None = None,
        client_key: str | None = None,
    ) -> Reservation:
        """
        Admit and persist a new PENDING reservation.

        Raises:
            RateLimitExceeded: If ``client_key`` is over its budget
            InvalidInputError: If the date or time is malformed
            ReservationRejected: If the service is unavailable, the start is
                outside the schedule, or the time is already taken
        """
        if self._rate_limiter is not None and client_key is not None:
            self._rate_limiter.check(client_key)

        request = validate_input(
            ReservationRequest,
            {"service_id": service_id, "date": date, "start_time": start_time, "notes": notes},
        )
        day = parse_date(request.date)
        start = TimeOfDay.parse(request.start_time)

        service = await self._store.get_service(service_id)
        if service is None or not service.is_active:
            raise ReservationRejected(RejectionReason.SERVICE_UNAVAILABLE, status_code=400)

        proposed = BookedInterval(start, start.add_minutes(service.duration_minutes))
        schedules = await self._store.list_schedules(service_id, active_only=True)
        existing = await self._booked_intervals(service_id, day)

        decision = can_book(
            proposed, service.duration_minutes, schedules, day_of_week(day), existing
        )
        if not decision.accepted:
            logger.info(
                "Rejected %s on %s at %s: %s", service_id, day.isoformat(), proposed, decision.reason.value
            )
            status_code = 409 if decision.reason is RejectionReason.CONFLICT else 400
            raise ReservationRejected(decision.reason, status_code=status_code, conflicting=decision.conflicting)

        reservation = Reservation(
            id=new_id(),
            user_id=user_id,
            service_id=service_id,
            date=day,
            start=proposed.start,
            end=proposed.end,
            status=ReservationStatus.PENDING,
            total_price=service.price,
            notes=request.notes,
            created_at=pendulum.now("UTC"),
        )

        # The store re-checks under its own lock; a concurrent booking may have won
        conflict = await self._store.insert_reservation_if_free(reservation)
        if conflict is not None:
            raise ReservationRejected(
                RejectionReason.CONFLICT, status_code=409, conflicting=conflict.interval
            )

        logger.info("Created reservation %s for %s on %s %s", reservation.id, service_id, day.isoformat(), proposed)
        if self._notifier is not None:
            self._notifier.availability_changed(service_id, day)

        return reservation

    async def update_reservation(
        self,
        actor: User,
        reservation_id: str,
        *,
        status: ReservationStatus | str | None = None,
        notes: str | None = None,
    ) -> Reservation:
        """
        Change the status or notes of a reservation.

        Admins may change anything, providers the reservations of their own
        services, clients may only cancel their own reservations.

        Raises:
            NotFoundError: If the reservation does not exist
            PermissionDeniedError: If ``actor`` may not make the change
        """
        update = validate_input(ReservationUpdate, {"status": status, "notes": notes})

        reservation = await self._store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")

        service = await self._store.get_service(reservation.service_id)
        self._check_update_permission(actor, reservation, service, update)

        if update.status in ACTIVE_STATUSES and not reservation.is_active:
            await self._check_reactivation(reservation)

        changes = {}
        if update.status is not None:
            changes["status"] = update.status
        if update.notes is not None:
            changes["notes"] = update.notes
        if not changes:
            return reservation

        updated = await self._store.update_reservation(replace(reservation, **changes))
        logger.info("Reservation %s updated by %s: %s", reservation_id, actor.id, changes)

        if update.status is not None and update.status != reservation.status:
            self._notify_status_change(updated, service)
            if self._notifier is not None and reservation.is_active != updated.is_active:
                self._notifier.availability_changed(updated.service_id, updated.date)

        return updated

    async def list_reservations(
        self,
        actor: User,
        *,
        status: ReservationStatus | str | None = None,
        service_id: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[Reservation]:
        """
        List reservations visible to ``actor``, newest date first.

        Clients see their own reservations, providers those of their
        services and admins everything.
        """
        filters = validate_input(
            ReservationFilters,
            {
                "status": status,
                "service_id": service_id,
                "date_from": date_from,
                "date_to": date_to,
                "page": page,
                "limit": limit,
            },
        )

        reservations = await self._store.list_reservations(
            service_id=filters.service_id,
            statuses=[filters.status] if filters.status else None,
        )

        if actor.role is UserRole.CLIENT:
            reservations = [r for r in reservations if r.user_id == actor.id]
        elif actor.role is UserRole.PROVIDER:
            own_services = {s.id for s in await self._store.list_services() if s.provider_id == actor.id}
            reservations = [r for r in reservations if r.service_id in own_services]

        if filters.date_from:
            lower = parse_date(filters.date_from)
            reservations = [r for r in reservations if r.date >= lower]
        if filters.date_to:
            upper = parse_date(filters.date_to)
            reservations = [r for r in reservations if r.date <= upper]

        reservations.sort(key=lambda r: (r.date, r.start), reverse=True)
        offset = (filters.page - 1) * filters.limit

        return Page(
            items=reservations[offset:offset + filters.limit],
            page=filters.page,
            limit=filters.limit,
            total=len(reservations),
        )

    async def add_service(self, actor: User, **fields) -> Service:
        """
        Add a service to the catalog; providers own what they add.

        Raises:
            PermissionDeniedError: If ``actor`` is a client
            InvalidInputError: If the fields fail validation
        """
        if actor.role is UserRole.CLIENT:
            raise PermissionDeniedError("Only providers and admins can add services")

        draft = validate_input(ServiceDraft, fields)
        provider_id = draft.provider_id if actor.role is UserRole.ADMIN and draft.provider_id else actor.id

        service = Service(
            id=new_id(),
            name=draft.name,
            description=draft.description,
            duration_minutes=draft.duration_minutes,
            price=draft.price,
            provider_id=provider_id,
        )
        logger.info("Adding service %s (%s)", service.id, service.name)
        return await self._store.add_service(service)

    async def add_schedule(
        self,
        actor: User,
        *,
        service_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
    ) -> ScheduleWindow:
        """
        Add a weekly opening window to a service.

        Raises:
            InvalidInputError: If the window is malformed
            NotFoundError: If the service does not exist
            PermissionDeniedError: If ``actor`` does not own the service
            ScheduleConflictError: If it overlaps an active window of that weekday
        """
        draft = validate_input(
            ScheduleDraft,
            {
                "service_id": service_id,
                "day_of_week": day_of_week,
                "start_time": start_time,
                "end_time": end_time,
            },
        )

        service = await self._store.get_service(draft.service_id)
        if service is None:
            raise NotFoundError(f"Service {draft.service_id} not found")

        if actor.role is not UserRole.ADMIN and service.provider_id != actor.id:
            raise PermissionDeniedError("You cannot add schedules to this service")

        window = ScheduleWindow(
            id=new_id(),
            service_id=service.id,
            day_of_week=draft.day_of_week,
            start=TimeOfDay.parse(draft.start_time),
            end=TimeOfDay.parse_end(draft.end_time),
        )

        for existing in await self._store.list_schedules(service.id, active_only=True):
            if existing.day_of_week == window.day_of_week and overlaps(
                existing.as_interval(), window.as_interval()
            ):
                raise ScheduleConflictError(
                    f"Schedule {window.start}-{window.end} overlaps existing "
                    f"window {existing.start}-{existing.end}"
                )

        return await self._store.add_schedule(window)

    async def get_reservation(self, actor: User, reservation_id: str) -> Reservation:
        """
        Fetch one reservation if ``actor`` may see it.

        Raises:
            NotFoundError: If the reservation does not exist
            PermissionDeniedError: If it belongs to another client or another provider's service
        """
        reservation = await self._store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")

        if actor.role is UserRole.ADMIN or reservation.user_id == actor.id:
            return reservation

        if actor.role is UserRole.PROVIDER:
            service = await self._store.get_service(reservation.service_id)
            if service is not None and service.provider_id == actor.id:
                return reservation

        raise PermissionDeniedError("You cannot view this reservation")

    async def delete_reservation(self, actor: User, reservation_id: str) -> None:
        """
        Remove a reservation outright. Admins only; everyone else cancels.

        Raises:
            PermissionDeniedError: If ``actor`` is not an admin
            NotFoundError: If the reservation does not exist
        """
        if actor.role is not UserRole.ADMIN:
            raise PermissionDeniedError("Only admins can delete reservations")

        reservation = await self._store.get_reservation(reservation_id)
        if reservation is None or not await self._store.delete_reservation(reservation_id):
            raise NotFoundError(f"Reservation {reservation_id} not found")

        logger.info("Reservation %s deleted by %s", reservation_id, actor.id)
        if self._notifier is not None and reservation.is_active:
            self._notifier.availability_changed(reservation.service_id, reservation.date)

    async def update_service(self, actor: User, service_id: str, **fields) -> Service:
        """
        Change a catalog entry; ``is_active=False`` takes it off the booking list.

        Raises:
            InvalidInputError: If the fields fail validation
            NotFoundError: If the service does not exist
            PermissionDeniedError: If ``actor`` neither owns it nor is an admin
        """
        update = validate_input(ServiceUpdate, fields)
        service = await self._owned_service(actor, service_id, "modify")

        changes = update.model_dump(exclude_none=True)
        if not changes:
            return service

        updated = await self._store.update_service(replace(service, **changes))
        logger.info("Service %s updated by %s: %s", service_id, actor.id, changes)
        return updated

    async def deactivate_service(self, actor: User, service_id: str) -> Service:
        """Stop offering a service while keeping its history."""
        return await self.update_service(actor, service_id, is_active=False)

    async def delete_service(self, actor: User, service_id: str) -> None:
        """
        Remove a service together with its schedules.

        Raises:
            NotFoundError: If the service does not exist
            PermissionDeniedError: If ``actor`` neither owns it nor is an admin
            ServiceInUseError: While PENDING or CONFIRMED reservations remain
        """
        await self._owned_service(actor, service_id, "delete")

        blocking = await self._store.delete_service_if_unbooked(service_id)
        if blocking:
            raise ServiceInUseError(
                f"Service {service_id} still has {blocking} active reservation(s)"
            )
        logger.info("Service %s deleted by %s", service_id, actor.id)

    async def list_schedules(
        self, service_id: str | None = None, include_inactive: bool = True
    ) -> List[ScheduleWindow]:
        """
        Schedule windows of one service, or of every service when ``service_id`` is None.

        Raises:
            NotFoundError: If ``service_id`` names no service
        """
        if service_id is not None and await self._store.get_service(service_id) is None:
            raise NotFoundError(f"Service {service_id} not found")
        return await self._store.list_schedules(service_id, active_only=not include_inactive)

    async def register_user(self, *, name: str, email: str, phone: str | None = None) -> User:
        """
        Add a CLIENT account. Roles are raised by editing the data file.

        Raises:
            InvalidInputError: If the fields fail validation
            AlreadyExistsError: If the email is already registered
        """
        draft = validate_input(UserDraft, {"name": name, "email": email, "phone": phone})

        if await self._store.get_user_by_email(draft.email) is not None:
            raise AlreadyExistsError(f"Email {draft.email} is already registered")

        user = User(id=new_id(), name=draft.name, email=draft.email, phone=draft.phone)
        logger.info("Registered user %s", user.id)
        return await self._store.add_user(user)

    async def _owned_service(self, actor: User, service_id: str, action: str) -> Service:
        if actor.role is UserRole.CLIENT:
            raise PermissionDeniedError(f"Only providers and admins can {action} services")

        service = await self._store.get_service(service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found")

        if actor.role is not UserRole.ADMIN and service.provider_id != actor.id:
            raise PermissionDeniedError(f"You cannot {action} this service")
        return service

    async def _booked_intervals(self, service_id: str, day: Date) -> List[BookedInterval]:
        """Occupied spans of a service on ``day``; only active statuses count."""
        reservations = await self._store.list_reservations(
            service_id=service_id, date=day, statuses=ACTIVE_STATUSES
        )
        return [r.interval for r in reservations]

    async def _check_reactivation(self, reservation: Reservation) -> None:
        """A cancelled or closed reservation may only come back if its time is still free."""
        for other in await self._store.list_reservations(
            service_id=reservation.service_id, date=reservation.date, statuses=ACTIVE_STATUSES
        ):
            if other.id != reservation.id and overlaps(other.interval, reservation.interval):
                raise ReservationRejected(
                    RejectionReason.CONFLICT, status_code=409, conflicting=other.interval
                )

    @staticmethod
    def _check_update_permission(
        actor: User,
        reservation: Reservation,
        service: Service | None,
        update: ReservationUpdate,
    ) -> None:
        if actor.role is UserRole.ADMIN:
            return

        if actor.role is UserRole.PROVIDER and service is not None and service.provider_id == actor.id:
            return

        if (
            actor.role is UserRole.CLIENT
            and reservation.user_id == actor.id
            and update.status is ReservationStatus.CANCELLED
        ):
            return

        if actor.role is UserRole.CLIENT and reservation.user_id == actor.id:
            raise PermissionDeniedError("You can only cancel your reservations")

        raise PermissionDeniedError("You cannot modify this reservation")

    def _notify_status_change(self, reservation: Reservation, service: Service | None) -> None:
        if self._notifier is None:
            return

        service_name = service.name if service else reservation.service_id
        when = f"{reservation.date.isoformat()} at {reservation.start}"

        if reservation.status is ReservationStatus.CONFIRMED:
            notification = Notification(
                user_id=reservation.user_id,
                type=NotificationType.RESERVATION_CONFIRMED,
                title="Reservation confirmed",
                message=f"Your reservation for {service_name} on {when} is confirmed",
                reservation_id=reservation.id,
            )
        elif reservation.status is ReservationStatus.CANCELLED:
            notification = Notification(
                user_id=reservation.user_id,
                type=NotificationType.RESERVATION_CANCELLED,
                title="Reservation cancelled",
                message=f"Your reservation for {service_name} on {when} was cancelled",
                reservation_id=reservation.id,
            )
        else:
            return

        self._notifier.notify(notification)
