"""
API tests with services wired to the in-memory booking store
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from coachbook.api.v1.deps import (
    get_availability_service,
    get_booking_service,
    get_transition_service,
)
from coachbook.main import app
from coachbook.services.availability_service import AvailabilityService


@pytest.fixture
def every_day_coach(store):
    return store.add_coach(rules=[(day, "00:00", "23:30") for day in range(7)])


@pytest.fixture
def client(store, booking_service, transition_service):
    app.dependency_overrides[get_availability_service] = lambda: AvailabilityService(store)
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_transition_service] = lambda: transition_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def booking_payload(coach, start: datetime, **overrides) -> dict:
    payload = {
        "coach_id": str(coach.id),
        "student_name": "Beth Harmon",
        "student_email": "beth@example.com",
        "student_timezone": "UTC",
        "slot": {"datetime": start.isoformat(), "duration_minutes": 60},
    }
    payload.update(overrides)
    return payload


def tomorrow_noon() -> datetime:
    now = datetime.now(timezone.utc)
    return (now + timedelta(days=1)).replace(hour=12, minute=0, second=0, microsecond=0)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAvailabilityEndpoint:
    """Tests for GET /api/v1/coaches/{coach_id}/availability"""

    def test_returns_slots_grouped_by_day(self, client, every_day_coach):
        response = client.get(
            f"/api/v1/coaches/{every_day_coach.id}/availability",
            params={"duration": 60, "timezone": "Europe/Paris"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["coach_timezone"] == "UTC"
        assert body["slots"]
        assert sum(len(day) for day in body["days"].values()) == len(body["slots"])
        first = body["slots"][0]
        assert {"start", "start_ms", "label", "display_time", "coach_local_label"} <= set(first)

    def test_booked_slot_disappears(self, client, store, every_day_coach):
        start = tomorrow_noon()
        store.seed_booking(every_day_coach, start, status="pending")

        body = client.get(f"/api/v1/coaches/{every_day_coach.id}/availability").json()

        starts = {slot["start"] for slot in body["slots"]}
        assert start.isoformat() not in starts
        assert (start + timedelta(minutes=30)).isoformat() not in starts

    def test_excluded_booking_does_not_block(self, client, store, every_day_coach):
        start = tomorrow_noon()
        booking = store.seed_booking(every_day_coach, start)

        body = client.get(
            f"/api/v1/coaches/{every_day_coach.id}/availability",
            params={"exclude_booking_id": str(booking.id)},
        ).json()

        assert start.isoformat() in {slot["start"] for slot in body["slots"]}

    def test_unknown_timezone(self, client, every_day_coach):
        response = client.get(
            f"/api/v1/coaches/{every_day_coach.id}/availability",
            params={"timezone": "Atlantis/Capital"},
        )
        assert response.status_code == 400

    def test_unknown_coach(self, client):
        response = client.get("/api/v1/coaches/00000000-0000-0000-0000-000000000000/availability")
        assert response.status_code == 404


class TestBookingEndpoints:
    """Tests for booking creation and transitions over HTTP"""

    def test_create_then_conflict(self, client, coach):
        start = tomorrow_noon()

        created = client.post("/api/v1/bookings", json=booking_payload(coach, start))
        again = client.post("/api/v1/bookings", json=booking_payload(coach, start))

        assert created.status_code == 201
        assert created.json()["booking"]["status"] == "pending"
        assert again.status_code == 409
        assert again.json()["detail"]["reason"] == "That time was just taken. Please pick another slot."

    def test_validation_error(self, client, coach):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        response = client.post("/api/v1/bookings", json=booking_payload(coach, past))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation"

    def test_unknown_coach(self, client, coach):
        payload = booking_payload(coach, tomorrow_noon(), coach_id="00000000-0000-0000-0000-000000000000")
        assert client.post("/api/v1/bookings", json=payload).status_code == 404

    def test_accept_and_cancel(self, client, store, coach, provider):
        booking = store.seed_booking(coach, tomorrow_noon(), status="pending")

        accepted = client.post(f"/api/v1/bookings/{booking.id}/accept")
        cancelled = client.post(f"/api/v1/bookings/{booking.id}/cancel")

        assert accepted.status_code == 200
        assert accepted.json()["booking"]["meeting_url"] == "https://meet.google.com/new-link"
        assert cancelled.status_code == 200
        assert cancelled.json()["booking"]["status"] == "cancelled"
        provider.delete_event.assert_awaited_once()

    def test_accept_with_manual_link(self, client, store, coach, provider):
        booking = store.seed_booking(coach, tomorrow_noon(), status="pending")

        response = client.post(
            f"/api/v1/bookings/{booking.id}/accept",
            json={"meeting_url": "https://zoom.us/j/42"},
        )

        assert response.status_code == 200
        assert response.json()["booking"]["meeting_url"] == "https://zoom.us/j/42"
        provider.create_event.assert_not_awaited()

    def test_accept_reports_reconnect(self, client, store, coach, provider):
        from coachbook.services.results import SyncResult

        provider.create_event.return_value = SyncResult.reconnect("auth_expired")
        booking = store.seed_booking(coach, tomorrow_noon(), status="pending")

        body = client.post(f"/api/v1/bookings/{booking.id}/accept").json()

        assert body["booking"]["status"] == "confirmed"
        assert body["needs_reconnect"] is True
        assert body["warnings"]

    def test_complete_future_session_is_422(self, client, store, coach):
        booking = store.seed_booking(coach, tomorrow_noon())

        response = client.post(f"/api/v1/bookings/{booking.id}/complete")

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "guard"
        assert store.bookings[str(booking.id)].status == "confirmed"

    def test_decline_and_reset(self, client, store, coach):
        booking = store.seed_booking(coach, tomorrow_noon(), status="pending")

        assert client.post(f"/api/v1/bookings/{booking.id}/decline").status_code == 200
        reset = client.post(f"/api/v1/bookings/{booking.id}/reset")

        assert reset.status_code == 200
        assert reset.json()["booking"]["status"] == "pending"

    def test_reschedule(self, client, store, coach):
        original = store.seed_booking(coach, tomorrow_noon())
        new_start = tomorrow_noon() + timedelta(days=1)

        response = client.post(
            f"/api/v1/bookings/{original.id}/reschedule",
            json={"datetime": new_start.isoformat(), "duration_minutes": 60},
        )

        assert response.status_code == 201
        assert response.json()["booking"]["reschedule_of"] == str(original.id)

    def test_unknown_booking(self, client):
        response = client.post("/api/v1/bookings/00000000-0000-0000-0000-000000000000/accept")
        assert response.status_code == 404
