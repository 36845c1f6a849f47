"""
Shared fixtures: a small booking catalog written to a temporary JSON file.
"""

import json
import os

import pytest

# Rich wraps console output at the detected terminal width (80 under the test
# runner); long tmp paths would split messages across lines.
os.environ.setdefault("COLUMNS", "500")

from slotbooker.adapters.json_store import JsonReservationStore
from slotbooker.domain.models import Notification


CATALOG = {
    "users": [
        {"id": "admin", "name": "Admin", "email": "admin@example.com", "role": "ADMIN"},
        {"id": "doc", "name": "Dr. Who", "email": "doc@example.com", "role": "PROVIDER"},
        {"id": "other-doc", "name": "Dr. No", "email": "no@example.com", "role": "PROVIDER"},
        {"id": "ana", "name": "Ana", "email": "ana@example.com", "role": "CLIENT"},
        {"id": "bob", "name": "Bob", "email": "bob@example.com", "role": "CLIENT"},
    ],
    "services": [
        {"id": "consult", "name": "Consultation", "duration": 30, "price": 50.0,
         "providerId": "doc", "isActive": True},
        {"id": "long", "name": "Long Session", "duration": 60, "price": 90.0,
         "providerId": "doc", "isActive": True},
        {"id": "retired", "name": "Retired", "duration": 30, "price": 10.0,
         "providerId": "doc", "isActive": False},
    ],
    "schedules": [
        # 2024-11-25 is a Monday (day 1)
        {"id": "w1", "serviceId": "consult", "dayOfWeek": 1, "startTime": "08:00", "endTime": "12:00"},
        {"id": "w2", "serviceId": "consult", "dayOfWeek": 1, "startTime": "14:00", "endTime": "15:00"},
        {"id": "w3", "serviceId": "long", "dayOfWeek": 2, "startTime": "09:00", "endTime": "11:00"},
        {"id": "w4", "serviceId": "consult", "dayOfWeek": 1, "startTime": "18:00", "endTime": "19:00",
         "isActive": False},
    ],
    "reservations": [
        {"id": "r-booked", "userId": "bob", "serviceId": "consult", "date": "2024-11-25",
         "startTime": "09:00", "endTime": "09:30", "status": "CONFIRMED", "totalPrice": 50.0},
        {"id": "r-cancelled", "userId": "bob", "serviceId": "consult", "date": "2024-11-25",
         "startTime": "10:00", "endTime": "10:30", "status": "CANCELLED", "totalPrice": 50.0},
    ],
}


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "reservations.json"
    path.write_text(json.dumps(CATALOG), encoding="utf-8")
    return path


@pytest.fixture
def store(data_file):
    return JsonReservationStore(data_file)


class RecordingNotifier:
    """Collects everything the services send."""

    def __init__(self):
        self.notifications: list[Notification] = []
        self.changes: list[tuple] = []

    def notify(self, notification):
        self.notifications.append(notification)

    def availability_changed(self, service_id, date):
        self.changes.append((service_id, date.isoformat()))


@pytest.fixture
def notifier():
    return RecordingNotifier()
