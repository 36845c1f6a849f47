"""
File-backed persistence provider for services, schedules and reservations.
"""

import asyncio
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pendulum
from pendulum import Date

from ..domain.exceptions import StorageError
from ..domain.models import (
    Reservation,
    ReservationStatus,
    ScheduleWindow,
    Service,
    TimeOfDay,
    User,
    UserRole,
    parse_date,
)

logger = logging.getLogger(__name__)

SAMPLE_DATA_FILE = Path(__file__).parent / "sample_data.json"


class JsonReservationStore:
    """
    Keeps the whole booking catalog in one JSON document.

    The document is loaded once and written back after every change.
    Mutations are serialised by an ``asyncio.Lock`` so the read-check-write
    sequence of ``insert_reservation_if_free`` cannot interleave with another
    booking for the same service and date.

    Format:
    {
        "users": [{"id", "name", "email", "role", "phone"}],
        "services": [{"id", "name", "description", "duration", "price",
                      "providerId", "isActive"}],
        "schedules": [{"id", "serviceId", "dayOfWeek", "startTime",
                       "endTime", "isActive"}],
        "reservations": [{"id", "userId", "serviceId", "date", "startTime",
                          "endTime", "status", "totalPrice", "notes",
                          "createdAt"}]
    }
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._load()

    @classmethod
    def from_sample_data(cls, path: Path) -> "JsonReservationStore":
        """Create ``path`` from the bundled demo catalog and open it."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(SAMPLE_DATA_FILE.read_text(encoding="utf-8"), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Could not write sample data to {path}: {exc}") from exc
        return cls(path)

    def _load(self) -> None:
        """Load the document from disk; a missing file is an empty store."""
        self.users: Dict[str, User] = {}
        self.services: Dict[str, Service] = {}
        self.schedules: Dict[str, ScheduleWindow] = {}
        self.reservations: Dict[str, Reservation] = {}

        if not self.path.exists():
            logger.debug("Data file %s does not exist, starting empty", self.path)
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Could not read data file {self.path}: {exc}") from exc

        if not isinstance(data, dict):
            raise StorageError(f"Data file {self.path} must contain a JSON object")

        try:
            for item in data.get("users", []):
                user = _user_from_dict(item)
                self.users[user.id] = user
            for item in data.get("services", []):
                service = _service_from_dict(item)
                self.services[service.id] = service
            for item in data.get("schedules", []):
                window = _schedule_from_dict(item)
                self.schedules[window.id] = window
            for item in data.get("reservations", []):
                reservation = _reservation_from_dict(item)
                self.reservations[reservation.id] = reservation
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Malformed record in {self.path}: {exc}") from exc

        logger.debug(
            "Loaded %d services, %d schedules, %d reservations from %s",
            len(self.services), len(self.schedules), len(self.reservations), self.path
        )

    def _save(self, **tables: Dict[str, Any]) -> None:
        """
        Write the document with ``tables`` swapped in, then adopt them.

        Callers pass modified copies of ``users``, ``services``, ``schedules``
        or ``reservations``; the in-memory state only changes once the file
        has been replaced, so a failed write leaves the store as it was.
        """
        current = {
            "users": self.users,
            "services": self.services,
            "schedules": self.schedules,
            "reservations": self.reservations,
        }
        current.update(tables)

        document = {
            "users": [_user_to_dict(u) for u in current["users"].values()],
            "services": [_service_to_dict(s) for s in current["services"].values()],
            "schedules": [_schedule_to_dict(w) for w in current["schedules"].values()],
            "reservations": [_reservation_to_dict(r) for r in current["reservations"].values()],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageError(f"Could not write data file {self.path}: {exc}") from exc

        for name, table in tables.items():
            setattr(self, name, table)

    # Users

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        return next((u for u in self.users.values() if u.email.lower() == email), None)

    async def add_user(self, user: User) -> User:
        async with self._lock:
            users = dict(self.users)
            users[user.id] = user
            self._save(users=users)
        return user

    # Services

    async def get_service(self, service_id: str) -> Optional[Service]:
        return self.services.get(service_id)

    async def list_services(self, active_only: bool = False) -> List[Service]:
        services = sorted(self.services.values(), key=lambda s: s.name.lower())
        if active_only:
            return [s for s in services if s.is_active]
        return services

    async def add_service(self, service: Service) -> Service:
        async with self._lock:
            services = dict(self.services)
            services[service.id] = service
            self._save(services=services)
        return service

    async def update_service(self, service: Service) -> Service:
        async with self._lock:
            if service.id not in self.services:
                raise StorageError(f"Service {service.id} does not exist")
            services = dict(self.services)
            services[service.id] = service
            self._save(services=services)
        return service

    async def delete_service_if_unbooked(self, service_id: str) -> int:
        """
        Remove a service and its schedules unless it still has active reservations.

        Returns:
            0 when deleted, otherwise the number of active reservations
        """
        async with self._lock:
            active = [
                r for r in self.reservations.values()
                if r.service_id == service_id and r.is_active
            ]
            if active:
                return len(active)

            services = {k: s for k, s in self.services.items() if k != service_id}
            schedules = {k: w for k, w in self.schedules.items() if w.service_id != service_id}
            reservations = {k: r for k, r in self.reservations.items() if r.service_id != service_id}
            self._save(services=services, schedules=schedules, reservations=reservations)
        return 0

    # Schedules

    async def list_schedules(self, service_id: Optional[str] = None, active_only: bool = True) -> List[ScheduleWindow]:
        """Windows ordered by service, weekday and start time; all services when ``service_id`` is None."""
        windows = [
            w for w in self.schedules.values()
            if (service_id is None or w.service_id == service_id) and (w.is_active or not active_only)
        ]
        return sorted(windows, key=lambda w: (w.service_id or "", w.day_of_week, w.start))

    async def add_schedule(self, window: ScheduleWindow) -> ScheduleWindow:
        async with self._lock:
            schedules = dict(self.schedules)
            schedules[window.id] = window
            self._save(schedules=schedules)
        return window

    # Reservations

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        return self.reservations.get(reservation_id)

    async def list_reservations(
        self,
        service_id: Optional[str] = None,
        date: Optional[Date] = None,
        statuses: Optional[Iterable[ReservationStatus]] = None,
    ) -> List[Reservation]:
        """Reservations matching every given filter, ordered by date and start."""
        return self._matching(service_id, date, statuses)

    def _matching(self, service_id, date, statuses) -> List[Reservation]:
        wanted = set(statuses) if statuses is not None else None
        result = [
            r for r in self.reservations.values()
            if (service_id is None or r.service_id == service_id)
            and (date is None or r.date == date)
            and (wanted is None or r.status in wanted)
        ]
        return sorted(result, key=lambda r: (r.date, r.start))

    async def insert_reservation_if_free(self, reservation: Reservation) -> Optional[Reservation]:
        """
        Persist ``reservation`` unless an active one of the same service and date overlaps it.

        Returns:
            None when written, otherwise the conflicting reservation
        """
        async with self._lock:
            for existing in self._matching(reservation.service_id, reservation.date, None):
                if existing.is_active and existing.interval.overlaps(reservation.interval):
                    logger.info(
                        "Refusing reservation %s: overlaps %s", reservation.id, existing.id
                    )
                    return existing

            reservations = dict(self.reservations)
            reservations[reservation.id] = reservation
            self._save(reservations=reservations)

        return None

    async def update_reservation(self, reservation: Reservation) -> Reservation:
        async with self._lock:
            if reservation.id not in self.reservations:
                raise StorageError(f"Reservation {reservation.id} does not exist")
            reservations = dict(self.reservations)
            reservations[reservation.id] = reservation
            self._save(reservations=reservations)
        return reservation

    async def delete_reservation(self, reservation_id: str) -> bool:
        """Remove a reservation; returns False when it did not exist."""
        async with self._lock:
            if reservation_id not in self.reservations:
                return False
            reservations = {k: r for k, r in self.reservations.items() if k != reservation_id}
            self._save(reservations=reservations)
        return True

    async def update_statuses(self, changes: Dict[str, ReservationStatus]) -> int:
        """Apply several status changes in one write; returns how many were applied."""
        applied = 0
        async with self._lock:
            reservations = dict(self.reservations)
            for reservation_id, status in changes.items():
                current = reservations.get(reservation_id)
                if current is None:
                    continue
                reservations[reservation_id] = replace(current, status=status)
                applied += 1
            if applied:
                self._save(reservations=reservations)
        return applied


def _user_from_dict(item: Dict[str, Any]) -> User:
    return User(
        id=item["id"],
        name=item["name"],
        email=item["email"],
        role=UserRole(item.get("role", UserRole.CLIENT.value)),
        phone=item.get("phone"),
    )


def _user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "phone": user.phone,
    }


def _service_from_dict(item: Dict[str, Any]) -> Service:
    return Service(
        id=item["id"],
        name=item["name"],
        description=item.get("description"),
        duration_minutes=int(item["duration"]),
        price=float(item.get("price", 0)),
        provider_id=item["providerId"],
        is_active=bool(item.get("isActive", True)),
    )


def _service_to_dict(service: Service) -> Dict[str, Any]:
    return {
        "id": service.id,
        "name": service.name,
        "description": service.description,
        "duration": service.duration_minutes,
        "price": service.price,
        "providerId": service.provider_id,
        "isActive": service.is_active,
    }


def _schedule_from_dict(item: Dict[str, Any]) -> ScheduleWindow:
    return ScheduleWindow(
        id=item["id"],
        service_id=item["serviceId"],
        day_of_week=int(item["dayOfWeek"]),
        start=TimeOfDay.parse(item["startTime"]),
        end=TimeOfDay.parse_end(item["endTime"]),
        is_active=bool(item.get("isActive", True)),
    )


def _schedule_to_dict(window: ScheduleWindow) -> Dict[str, Any]:
    return {
        "id": window.id,
        "serviceId": window.service_id,
        "dayOfWeek": window.day_of_week,
        "startTime": str(window.start),
        "endTime": str(window.end),
        "isActive": window.is_active,
    }


def _reservation_from_dict(item: Dict[str, Any]) -> Reservation:
    created_at = item.get("createdAt")
    return Reservation(
        id=item["id"],
        user_id=item["userId"],
        service_id=item["serviceId"],
        date=parse_date(item["date"]),
        start=TimeOfDay.parse(item["startTime"]),
        end=TimeOfDay.parse_end(item["endTime"]),
        status=ReservationStatus(item.get("status", ReservationStatus.PENDING.value)),
        total_price=float(item.get("totalPrice", 0)),
        notes=item.get("notes"),
        created_at=pendulum.parse(created_at) if created_at else None,
    )


def _reservation_to_dict(reservation: Reservation) -> Dict[str, Any]:
    return {
        "id": reservation.id,
        "userId": reservation.user_id,
        "serviceId": reservation.service_id,
        "date": reservation.date.isoformat(),
        "startTime": str(reservation.start),
        "endTime": str(reservation.end),
        "status": reservation.status.value,
        "totalPrice": reservation.total_price,
        "notes": reservation.notes,
        "createdAt": reservation.created_at.to_iso8601_string() if reservation.created_at else None,
    }
