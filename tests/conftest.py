"""
Shared fixtures: an in-memory booking store that enforces the same
no-overlap and single-pending-reschedule rules as the database, plus
mocked notification, email and calendar collaborators.
"""
import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from coachbook.models import ACTIVE_STATUSES
from coachbook.services.booking_service import BookingService
from coachbook.services.results import (
    DuplicateRescheduleError,
    SlotTakenError,
    StatusChangedError,
    SyncResult,
)
from coachbook.services.transitions import TransitionService


class FakeBookingStore:
    """Stands in for DBService; every insert/update is checked atomically."""

    def __init__(self):
        self.coaches = {}
        self.rules = {}
        self.bookings = {}
        self.connections = {}
        self.connection_updates = []

    # Seeding helpers (sync, for test setup)

    def add_coach(self, rules=None, **fields):
        coach = SimpleNamespace(
            id=uuid.uuid4(),
            name=fields.pop("name", "Magnus Coach"),
            email=fields.pop("email", "coach@example.com"),
            slug=fields.pop("slug", "magnus"),
            timezone=fields.pop("timezone", "UTC"),
            min_notice_minutes=fields.pop("min_notice_minutes", 0),
            buffer_minutes=fields.pop("buffer_minutes", 0),
            **fields,
        )
        self.coaches[str(coach.id)] = coach
        self.rules[str(coach.id)] = [
            SimpleNamespace(day_of_week=day, start_time=start, end_time=end)
            for day, start, end in (rules or [])
        ]
        return coach

    def seed_booking(self, coach, start, duration_minutes=60, status="confirmed", **fields):
        row = {
            "coach_id": coach.id,
            "student_name": fields.pop("student_name", "Beth Harmon"),
            "student_email": fields.pop("student_email", "beth@example.com"),
            "student_timezone": fields.pop("student_timezone", "UTC"),
            "requested_times": [{"datetime": start.isoformat(), "duration_minutes": duration_minutes}],
            "scheduled_start": start,
            "scheduled_end": start + timedelta(minutes=duration_minutes),
            "duration_minutes": duration_minutes,
            "status": status,
        }
        row.update(fields)
        return self._store(row)

    # DBService interface

    async def get_coach(self, coach_id):
        return self.coaches.get(str(coach_id))

    async def get_availability_rules(self, coach_id):
        return list(self.rules.get(str(coach_id), []))

    async def get_google_connection(self, coach_id):
        return self.connections.get(str(coach_id))

    async def update_google_connection(self, coach_id, data):
        self.connection_updates.append((str(coach_id), dict(data)))

    async def get_booking(self, booking_id):
        return self.bookings.get(str(booking_id))

    async def get_active_bookings(self, coach_id, exclude_booking_id=None):
        return [
            b for b in self.bookings.values()
            if str(b.coach_id) == str(coach_id)
            and b.status in ACTIVE_STATUSES
            and str(b.id) != str(exclude_booking_id)
        ]

    async def get_pending_reschedule(self, original_booking_id):
        for b in self.bookings.values():
            if str(b.reschedule_of) == str(original_booking_id) and b.status == "pending":
                return b
        return None

    async def insert_booking(self, data):
        self._check_constraints(data, ignore_id=None)
        return self._store(data)

    async def transition_status(self, booking_id, expected_status, data):
        booking = self.bookings.get(str(booking_id))
        if booking is None or booking.status != expected_status:
            raise StatusChangedError(f"Booking {booking_id} is no longer {expected_status}")
        candidate = {**vars(booking), **data}
        self._check_constraints(candidate, ignore_id=booking.id)
        for key, value in data.items():
            setattr(booking, key, value)
        return booking

    async def update_booking(self, booking_id, data):
        booking = self.bookings.get(str(booking_id))
        if booking:
            for key, value in data.items():
                setattr(booking, key, value)
        return booking

    # Internals

    def _store(self, data):
        booking = SimpleNamespace(
            id=uuid.uuid4(),
            reschedule_of=None,
            calendar_event_id=None,
            calendar_provider=None,
            meeting_url=None,
        )
        for key, value in data.items():
            setattr(booking, key, value)
        self.bookings[str(booking.id)] = booking
        return booking

    def _check_constraints(self, row, ignore_id):
        if row.get("status") not in ACTIVE_STATUSES:
            return
        start, end = row.get("scheduled_start"), row.get("scheduled_end")
        for other in self.bookings.values():
            if other.id == ignore_id or other.status not in ACTIVE_STATUSES:
                continue
            if str(other.coach_id) != str(row["coach_id"]):
                continue
            if start and end and other.scheduled_start and other.scheduled_end:
                if start < other.scheduled_end and end > other.scheduled_start:
                    raise SlotTakenError("booking_requests_no_overlap")
        reschedule_of = row.get("reschedule_of")
        if reschedule_of is not None and row.get("status") == "pending":
            for other in self.bookings.values():
                if other.id != ignore_id and other.status == "pending" and other.reschedule_of == reschedule_of:
                    raise DuplicateRescheduleError("uq_booking_requests_pending_reschedule")


@pytest.fixture
def store():
    return FakeBookingStore()


@pytest.fixture
def coach(store):
    # Weekdays 09:00-17:00 UTC
    return store.add_coach(rules=[(day, "09:00", "17:00") for day in range(1, 6)])


@pytest.fixture
def notifications():
    service = MagicMock()
    service.enqueue = AsyncMock(return_value=True)
    return service


@pytest.fixture
def mailer():
    sender = MagicMock()
    sender.send = AsyncMock(return_value="email_123")
    return sender


@pytest.fixture
def provider():
    calendar = MagicMock()
    calendar.name = "google"
    calendar.create_event = AsyncMock(
        return_value=SyncResult.success(event_id="evt_new", conference_url="https://meet.google.com/new-link")
    )
    calendar.patch_event_time = AsyncMock(
        return_value=SyncResult.success(event_id="evt_orig", conference_url="https://meet.google.com/orig-link")
    )
    calendar.delete_event = AsyncMock(return_value=SyncResult.success())
    return calendar


@pytest.fixture
def booking_service(store, notifications, mailer):
    return BookingService(store, notifications=notifications, mailer=mailer)


@pytest.fixture
def transition_service(store, notifications, mailer, provider):
    return TransitionService(
        store,
        notifications=notifications,
        mailer=mailer,
        provider_resolver=AsyncMock(return_value=provider),
        timeout_seconds=1,
    )
