"""
Periodic reservation jobs: reminders for tomorrow and the past-reservation sweep.

Triggering these on a timetable is left to the operator (cron, systemd
timers); every job here is a single run for a given ``today``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import pendulum
from pendulum import Date

from ..domain.models import Notification, NotificationType, Reservation, ReservationStatus
from .booking import Notifier, ReservationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    no_show: int
    cancelled: int


class ReminderService:
    """Builds reminder notifications and moves stale reservations to final statuses."""

    def __init__(self, store: ReservationStore, notifier: Notifier, timezone: str = "UTC") -> None:
        self._store = store
        self._notifier = notifier
        self._timezone = timezone

    def _today(self, today: Date | None) -> Date:
        return today if today is not None else pendulum.today(self._timezone).date()

    async def send_daily_reminders(self, today: Date | None = None) -> List[Notification]:
        """Remind customers of their CONFIRMED reservations dated tomorrow."""
        tomorrow = self._today(today).add(days=1)
        reservations = await self._store.list_reservations(
            date=tomorrow, statuses=[ReservationStatus.CONFIRMED]
        )
        logger.info("Sending %d reminders for %s", len(reservations), tomorrow.isoformat())

        sent: List[Notification] = []
        for reservation in reservations:
            service = await self._store.get_service(reservation.service_id)
            service_name = service.name if service else reservation.service_id
            notification = Notification(
                user_id=reservation.user_id,
                type=NotificationType.RESERVATION_REMINDER,
                title="Appointment reminder",
                message=f"You have an appointment tomorrow: {service_name} at {reservation.start}",
                reservation_id=reservation.id,
            )
            if self._deliver(notification, reservation):
                sent.append(notification)

        return sent

    async def send_confirmation_reminders(self, today: Date | None = None) -> List[Notification]:
        """Ask providers to confirm PENDING reservations dated tomorrow."""
        tomorrow = self._today(today).add(days=1)
        reservations = await self._store.list_reservations(
            date=tomorrow, statuses=[ReservationStatus.PENDING]
        )

        sent: List[Notification] = []
        for reservation in reservations:
            service = await self._store.get_service(reservation.service_id)
            if service is None:
                logger.warning("Reservation %s references unknown service %s", reservation.id, reservation.service_id)
                continue

            customer = await self._store.get_user(reservation.user_id)
            customer_name = customer.name if customer else reservation.user_id
            notification = Notification(
                user_id=service.provider_id,
                type=NotificationType.RESERVATION_REMINDER,
                title="Reservation awaiting confirmation",
                message=(
                    f"You have a pending reservation tomorrow: {customer_name} - "
                    f"{service.name} at {reservation.start}"
                ),
                reservation_id=reservation.id,
            )
            if self._deliver(notification, reservation):
                sent.append(notification)

        return sent

    async def sweep_past_reservations(self, today: Date | None = None) -> SweepResult:
        """
        Close out reservations that can no longer happen.

        CONFIRMED reservations before today become NO_SHOW; PENDING ones
        dated before yesterday are cancelled.
        """
        today = self._today(today)
        yesterday = today.subtract(days=1)

        confirmed = await self._store.list_reservations(statuses=[ReservationStatus.CONFIRMED])
        pending = await self._store.list_reservations(statuses=[ReservationStatus.PENDING])

        changes = {r.id: ReservationStatus.NO_SHOW for r in confirmed if r.date < today}
        no_show = len(changes)
        stale = {r.id: ReservationStatus.CANCELLED for r in pending if r.date < yesterday}
        changes.update(stale)

        if changes:
            await self._store.update_statuses(changes)
            logger.info("Marked %d reservations NO_SHOW, cancelled %d stale pending", no_show, len(stale))

        return SweepResult(no_show=no_show, cancelled=len(stale))

    def _deliver(self, notification: Notification, reservation: Reservation) -> bool:
        # One failed delivery must not stop the remaining reminders
        try:
            self._notifier.notify(notification)
        except Exception:
            logger.exception("Error sending reminder for reservation %s", reservation.id)
            return False
        return True
