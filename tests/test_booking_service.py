"""
Tests for the BookingService orchestration layer.
"""

import asyncio

import pendulum
import pytest

from slotbooker.domain.exceptions import (
    AlreadyExistsError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceeded,
    RejectionReason,
    ReservationRejected,
    ScheduleConflictError,
    ServiceInUseError,
)
from slotbooker.domain.models import (
    NotificationType,
    Reservation,
    ReservationStatus,
    TimeOfDay,
    UserRole,
)
from slotbooker.services.booking import BookingService
from slotbooker.services.rate_limiter import FixedWindowRateLimiter

MONDAY = "2024-11-25"


def _user(store, user_id):
    return asyncio.run(store.get_user(user_id))


class TestAvailability:
    """Tests for get_day_availability."""

    def test_merges_windows_and_ignores_cancelled(self, store):
        """Both Monday windows appear in order; only the confirmed booking blocks."""
        service = BookingService(store=store)

        result = asyncio.run(service.get_day_availability("consult", MONDAY))

        starts = [str(s.start) for s in result.slots]
        assert starts[0] == "08:00"
        assert starts[-2:] == ["14:00", "14:30"]
        assert len(result.slots) == 10

        by_start = {str(s.start): s.available for s in result.slots}
        assert by_start["09:00"] is False
        assert by_start["10:00"] is True  # cancelled reservation frees the slot
        assert "18:00" not in by_start  # inactive window

    def test_day_without_schedule_is_empty(self, store):
        service = BookingService(store=store)

        result = asyncio.run(service.get_day_availability("consult", "2024-11-24"))

        assert result.slots == []
        assert result.date == pendulum.date(2024, 11, 24)

    @pytest.mark.parametrize("service_id", ["missing", "retired"])
    def test_unknown_or_inactive_service(self, store, service_id):
        service = BookingService(store=store)

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(service.get_day_availability(service_id, MONDAY))

        assert excinfo.value.reason is RejectionReason.SERVICE_UNAVAILABLE
        assert excinfo.value.status_code == 404


class TestCreateReservation:
    """Tests for create_reservation."""

    def test_books_free_slot(self, store, notifier):
        service = BookingService(store=store, notifier=notifier)

        reservation = asyncio.run(
            service.create_reservation(
                user_id="ana", service_id="consult", date=MONDAY, start_time="9:30", notes="first visit"
            )
        )

        assert reservation.status is ReservationStatus.PENDING
        assert str(reservation.start) == "09:30"
        assert str(reservation.end) == "10:00"
        assert reservation.total_price == 50.0
        assert notifier.changes == [("consult", MONDAY)]

        availability = asyncio.run(service.get_day_availability("consult", MONDAY))
        by_start = {str(s.start): s.available for s in availability.slots}
        assert by_start["09:30"] is False

    def test_conflict_is_rejected_with_409(self, store):
        service = BookingService(store=store)

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(
                service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="09:15")
            )

        assert excinfo.value.reason is RejectionReason.CONFLICT
        assert excinfo.value.status_code == 409
        assert str(excinfo.value.conflicting) == "09:00-09:30"

    def test_outside_schedule_is_rejected_with_400(self, store):
        service = BookingService(store=store)

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(
                service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="07:30")
            )

        assert excinfo.value.reason is RejectionReason.OUTSIDE_SCHEDULE
        assert excinfo.value.status_code == 400

    def test_inactive_service_is_rejected(self, store):
        service = BookingService(store=store)

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(
                service.create_reservation(user_id="ana", service_id="retired", date=MONDAY, start_time="09:00")
            )

        assert excinfo.value.reason is RejectionReason.SERVICE_UNAVAILABLE

    def test_malformed_time_is_an_input_error(self, store):
        service = BookingService(store=store)

        with pytest.raises(InvalidInputError, match="start_time"):
            asyncio.run(
                service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="9am")
            )

    def test_lost_race_is_reported_as_conflict(self, store):
        """The store's own re-check wins over a stale admission decision."""

        class RacingStore:
            def __init__(self, inner):
                self._inner = inner

            def __getattr__(self, name):
                return getattr(self._inner, name)

            async def insert_reservation_if_free(self, reservation):
                return Reservation(
                    id="r-winner", user_id="bob", service_id=reservation.service_id,
                    date=reservation.date, start=TimeOfDay.of(11), end=TimeOfDay.of(11, 30),
                    status=ReservationStatus.PENDING,
                )

        service = BookingService(store=RacingStore(store))

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(
                service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="11:00")
            )

        assert excinfo.value.reason is RejectionReason.CONFLICT

    def test_rate_limit_applies_per_client(self, store):
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=lambda: 0.0)
        service = BookingService(store=store, rate_limiter=limiter)

        asyncio.run(
            service.create_reservation(
                user_id="ana", service_id="consult", date=MONDAY, start_time="08:00", client_key="ana"
            )
        )

        with pytest.raises(RateLimitExceeded):
            asyncio.run(
                service.create_reservation(
                    user_id="ana", service_id="consult", date=MONDAY, start_time="08:30", client_key="ana"
                )
            )


class TestUpdateReservation:
    """Tests for status changes and their permissions."""

    def test_client_can_cancel_own_reservation(self, store, notifier):
        service = BookingService(store=store, notifier=notifier)

        updated = asyncio.run(service.update_reservation(_user(store, "bob"), "r-booked", status="CANCELLED"))

        assert updated.status is ReservationStatus.CANCELLED
        assert notifier.notifications[0].type is NotificationType.RESERVATION_CANCELLED
        assert notifier.changes == [("consult", MONDAY)]

    def test_client_cannot_confirm(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError, match="only cancel"):
            asyncio.run(service.update_reservation(_user(store, "bob"), "r-booked", status="CONFIRMED"))

    def test_client_cannot_touch_others_reservation(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.update_reservation(_user(store, "ana"), "r-booked", status="CANCELLED"))

    def test_provider_of_service_can_confirm(self, store, notifier):
        service = BookingService(store=store, notifier=notifier)

        updated = asyncio.run(
            service.update_reservation(_user(store, "doc"), "r-cancelled", status=ReservationStatus.CONFIRMED)
        )

        assert updated.status is ReservationStatus.CONFIRMED
        assert notifier.notifications[0].type is NotificationType.RESERVATION_CONFIRMED

    def test_reactivation_into_taken_time_is_rejected(self, store):
        """Once 10:00 is rebooked, the cancelled 10:00 reservation cannot come back."""
        service = BookingService(store=store)
        asyncio.run(
            service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="10:00")
        )

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(
                service.update_reservation(_user(store, "doc"), "r-cancelled", status=ReservationStatus.PENDING)
            )

        assert excinfo.value.reason is RejectionReason.CONFLICT
        assert asyncio.run(store.get_reservation("r-cancelled")).status is ReservationStatus.CANCELLED

    def test_other_provider_is_denied(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.update_reservation(_user(store, "other-doc"), "r-booked", status="COMPLETED"))

    def test_unknown_reservation(self, store):
        service = BookingService(store=store)

        with pytest.raises(NotFoundError):
            asyncio.run(service.update_reservation(_user(store, "admin"), "nope", status="CANCELLED"))


class TestListReservations:
    """Tests for role-scoped listing."""

    def test_clients_see_only_their_own(self, store):
        service = BookingService(store=store)
        asyncio.run(
            service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="08:00")
        )

        page = asyncio.run(service.list_reservations(_user(store, "ana")))

        assert page.total == 1
        assert page.items[0].user_id == "ana"

    def test_admin_filters_and_pages(self, store):
        service = BookingService(store=store)

        page = asyncio.run(service.list_reservations(_user(store, "admin"), status="CONFIRMED", limit=1))

        assert page.total == 1
        assert page.total_pages == 1
        assert page.items[0].id == "r-booked"

    def test_limit_is_bounded(self, store):
        service = BookingService(store=store)

        with pytest.raises(InvalidInputError, match="limit"):
            asyncio.run(service.list_reservations(_user(store, "admin"), limit=500))


class TestCatalogChanges:
    """Tests for adding services and schedules."""

    def test_provider_adds_service(self, store):
        service = BookingService(store=store)

        created = asyncio.run(
            service.add_service(_user(store, "doc"), name="Check-up", duration_minutes=45, price=30)
        )

        assert created.provider_id == "doc"
        assert asyncio.run(store.get_service(created.id)) == created

    def test_service_duration_bounds(self, store):
        service = BookingService(store=store)

        with pytest.raises(InvalidInputError, match="duration_minutes"):
            asyncio.run(service.add_service(_user(store, "doc"), name="Blink", duration_minutes=5, price=1))

    def test_client_cannot_add_service(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.add_service(_user(store, "ana"), name="Mine", duration_minutes=30, price=1))

    def test_overlapping_schedule_is_rejected(self, store):
        service = BookingService(store=store)

        with pytest.raises(ScheduleConflictError):
            asyncio.run(
                service.add_schedule(
                    _user(store, "doc"), service_id="consult", day_of_week=1, start_time="11:30", end_time="13:00"
                )
            )

    def test_adjacent_schedule_is_accepted(self, store):
        service = BookingService(store=store)

        window = asyncio.run(
            service.add_schedule(
                _user(store, "doc"), service_id="consult", day_of_week=1, start_time="12:00", end_time="13:00"
            )
        )

        assert str(window.start) == "12:00"
        assert len(asyncio.run(store.list_schedules("consult"))) == 3

    def test_schedule_end_must_follow_start(self, store):
        service = BookingService(store=store)

        with pytest.raises(InvalidInputError, match="end_time must be later"):
            asyncio.run(
                service.add_schedule(
                    _user(store, "doc"), service_id="consult", day_of_week=3, start_time="13:00", end_time="12:00"
                )
            )

    def test_only_owner_adds_schedule(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(
                service.add_schedule(
                    _user(store, "other-doc"), service_id="consult", day_of_week=3,
                    start_time="08:00", end_time="09:00"
                )
            )

    def test_schedule_may_close_at_midnight(self, store):
        service = BookingService(store=store)

        window = asyncio.run(
            service.add_schedule(
                _user(store, "admin"), service_id="consult", day_of_week=5, start_time="22:00", end_time="24:00"
            )
        )
        friday = asyncio.run(service.get_day_availability("consult", "2024-11-29"))

        assert str(window.end) == "24:00"
        assert [str(s.end) for s in friday.slots][-1] == "24:00"


class TestServiceManagement:
    """Tests for changing and removing services."""

    def test_owner_updates_price_and_name(self, store):
        service = BookingService(store=store)

        updated = asyncio.run(
            service.update_service(_user(store, "doc"), "consult", name="Consult", price=60)
        )

        assert updated.name == "Consult"
        assert updated.price == 60
        assert updated.duration_minutes == 30
        assert asyncio.run(store.get_service("consult")) == updated

    def test_other_provider_cannot_update(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.update_service(_user(store, "other-doc"), "consult", price=1))

    def test_update_is_validated(self, store):
        service = BookingService(store=store)

        with pytest.raises(InvalidInputError, match="duration_minutes"):
            asyncio.run(service.update_service(_user(store, "admin"), "consult", duration_minutes=600))

    def test_deactivated_service_cannot_be_booked(self, store):
        service = BookingService(store=store)

        asyncio.run(service.deactivate_service(_user(store, "doc"), "consult"))

        with pytest.raises(ReservationRejected) as excinfo:
            asyncio.run(
                service.create_reservation(user_id="ana", service_id="consult", date=MONDAY, start_time="08:00")
            )
        assert excinfo.value.reason is RejectionReason.SERVICE_UNAVAILABLE

    def test_delete_refused_while_reservations_are_active(self, store):
        service = BookingService(store=store)

        with pytest.raises(ServiceInUseError, match="1 active"):
            asyncio.run(service.delete_service(_user(store, "admin"), "consult"))

        assert asyncio.run(store.get_service("consult")) is not None

    def test_delete_removes_service_and_schedules(self, store):
        service = BookingService(store=store)

        asyncio.run(service.delete_service(_user(store, "doc"), "long"))

        assert asyncio.run(store.get_service("long")) is None
        assert asyncio.run(store.list_schedules("long", active_only=False)) == []

    def test_unknown_service(self, store):
        service = BookingService(store=store)

        with pytest.raises(NotFoundError):
            asyncio.run(service.delete_service(_user(store, "admin"), "nope"))

    def test_list_schedules_across_services(self, store):
        service = BookingService(store=store)

        windows = asyncio.run(service.list_schedules())

        assert [w.id for w in windows] == ["w1", "w2", "w4", "w3"]
        assert [w.id for w in asyncio.run(service.list_schedules("long"))] == ["w3"]

    def test_list_schedules_of_unknown_service(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(BookingService(store=store).list_schedules("nope"))


class TestReservationAccess:
    """Tests for reading and deleting single reservations."""

    @pytest.mark.parametrize("user_id", ["admin", "bob", "doc"])
    def test_allowed_readers(self, store, user_id):
        service = BookingService(store=store)

        reservation = asyncio.run(service.get_reservation(_user(store, user_id), "r-booked"))

        assert reservation.id == "r-booked"

    @pytest.mark.parametrize("user_id", ["ana", "other-doc"])
    def test_other_users_are_denied(self, store, user_id):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.get_reservation(_user(store, user_id), "r-booked"))

    def test_admin_deletes_and_frees_the_slot(self, store, notifier):
        service = BookingService(store=store, notifier=notifier)

        asyncio.run(service.delete_reservation(_user(store, "admin"), "r-booked"))

        assert asyncio.run(store.get_reservation("r-booked")) is None
        assert notifier.changes == [("consult", MONDAY)]

    def test_only_admin_deletes(self, store):
        service = BookingService(store=store)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.delete_reservation(_user(store, "doc"), "r-booked"))

    def test_delete_unknown(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(BookingService(store=store).delete_reservation(_user(store, "admin"), "nope"))


class TestRegistration:
    """Tests for adding client accounts."""

    def test_registers_client(self, store):
        service = BookingService(store=store)

        user = asyncio.run(service.register_user(name="Carla", email="Carla@Example.com"))

        assert user.role is UserRole.CLIENT
        assert user.email == "carla@example.com"
        assert asyncio.run(store.get_user(user.id)) == user

    def test_duplicate_email(self, store):
        service = BookingService(store=store)

        with pytest.raises(AlreadyExistsError):
            asyncio.run(service.register_user(name="Ana Again", email="ANA@example.com"))

    def test_email_is_validated(self, store):
        with pytest.raises(InvalidInputError, match="email"):
            asyncio.run(BookingService(store=store).register_user(name="Nobody", email="not-an-email"))
