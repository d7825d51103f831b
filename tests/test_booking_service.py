"""
Unit tests for the booking commit protocol
"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from coachbook.integrations.email_client import EmailDeliveryError
from coachbook.scheduling import AvailabilityRule, extract_booked_intervals, generate_slots
from coachbook.services.booking_service import SlotChoice, StudentInfo
from coachbook.services.results import SLOT_TAKEN_MESSAGE, ErrorKind

NOW = datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)
MONDAY_9 = "2024-03-11T09:00:00Z"


def student(**overrides) -> StudentInfo:
    fields = dict(name="Beth Harmon", email="beth@example.com", timezone="America/Kentucky/Louisville")
    fields.update(overrides)
    return StudentInfo(**fields)


@pytest.mark.asyncio
class TestSubmitBooking:
    """Tests for submit_booking"""

    async def test_creates_pending_booking_holding_the_slot(self, booking_service, store, coach):
        result = await booking_service.submit_booking(
            str(coach.id), student(), SlotChoice(MONDAY_9, 60), now=NOW
        )

        assert result.ok
        booking = result.booking
        assert booking.status == "pending"
        assert booking.scheduled_start == datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc)
        assert booking.scheduled_end == datetime(2024, 3, 11, 10, 0, tzinfo=timezone.utc)
        assert booking.requested_times == [
            {"datetime": "2024-03-11T09:00:00+00:00", "duration_minutes": 60}
        ]
        # Pending rows are busy time for the next availability read
        active = await store.get_active_bookings(str(coach.id))
        assert extract_booked_intervals(active)[0].start == booking.scheduled_start

    async def test_side_effects_on_success(self, booking_service, coach, notifications, mailer):
        result = await booking_service.submit_booking(
            str(coach.id), student(), SlotChoice(MONDAY_9, 60), now=NOW
        )

        notifications.enqueue.assert_awaited_once()
        assert notifications.enqueue.call_args.kwargs["event_type"] == "request_created"
        assert notifications.enqueue.call_args.kwargs["booking_id"] == result.booking.id

        recipients = [call.args[0] for call in mailer.send.call_args_list]
        assert recipients == ["beth@example.com", "coach@example.com"]
        subject = mailer.send.call_args_list[0].args[1]
        assert subject == "Your session request has been sent"

    async def test_overlapping_submit_is_a_conflict(self, booking_service, coach):
        first = await booking_service.submit_booking(
            str(coach.id), student(), SlotChoice(MONDAY_9, 60), now=NOW
        )
        second = await booking_service.submit_booking(
            str(coach.id), student(email="jolene@example.com"),
            SlotChoice("2024-03-11T09:30:00Z", 60), now=NOW,
        )

        assert first.ok
        assert not second.ok
        assert second.error == ErrorKind.CONFLICT
        assert second.message == SLOT_TAKEN_MESSAGE

    async def test_back_to_back_bookings_are_allowed(self, booking_service, coach):
        first = await booking_service.submit_booking(
            str(coach.id), student(), SlotChoice(MONDAY_9, 60), now=NOW
        )
        second = await booking_service.submit_booking(
            str(coach.id), student(), SlotChoice("2024-03-11T10:00:00Z", 60), now=NOW
        )
        assert first.ok and second.ok

    async def test_concurrent_submits_only_one_wins(self, booking_service, store, coach):
        """Many simultaneous requests for overlapping times leave one active booking"""
        slots = [SlotChoice(f"2024-03-11T09:{minute:02d}:00Z", 60) for minute in (0, 10, 20, 30, 40)]
        results = await asyncio.gather(*[
            booking_service.submit_booking(str(coach.id), student(), slot, now=NOW)
            for slot in slots
        ])

        assert sum(1 for r in results if r.ok) == 1
        assert all(r.error == ErrorKind.CONFLICT for r in results if not r.ok)
        assert len(await store.get_active_bookings(str(coach.id))) == 1

    async def test_end_to_end_single_monday_slot(self, booking_service, store):
        """Generate the only slot, book it, then fail to book it again"""
        coach = store.add_coach(rules=[(1, "09:00", "10:00")])
        rules = [AvailabilityRule.from_row(r) for r in await store.get_availability_rules(str(coach.id))]

        slots = generate_slots(rules, 60, [], "UTC", "UTC", NOW, granularity_minutes=60)
        assert len(slots) == 1

        choice = SlotChoice(slots[0].start.isoformat(), 60)
        first = await booking_service.submit_booking(str(coach.id), student(), choice, now=NOW)
        again = await booking_service.submit_booking(str(coach.id), student(), choice, now=NOW)

        assert first.ok
        assert again.error == ErrorKind.CONFLICT

        booked = extract_booked_intervals(await store.get_active_bookings(str(coach.id)))
        assert generate_slots(rules, 60, booked, "UTC", "UTC", NOW, granularity_minutes=60) == []

    @pytest.mark.parametrize(
        "info, slot",
        [
            (dict(email="not-an-email"), SlotChoice(MONDAY_9, 60)),
            (dict(email=""), SlotChoice(MONDAY_9, 60)),
            (dict(name="  "), SlotChoice(MONDAY_9, 60)),
            (dict(timezone="Mars/Base"), SlotChoice(MONDAY_9, 60)),
            ({}, SlotChoice("next monday", 60)),
            ({}, SlotChoice("2024-03-08T09:00:00Z", 60)),
            ({}, SlotChoice(MONDAY_9, 0)),
            ({}, SlotChoice(MONDAY_9, "an hour")),
        ],
    )
    async def test_validation_rejects_before_any_write(self, booking_service, store, coach, info, slot):
        result = await booking_service.submit_booking(str(coach.id), student(**info), slot, now=NOW)

        assert not result.ok
        assert result.error == ErrorKind.VALIDATION
        assert result.message
        assert store.bookings == {}

    async def test_unknown_coach(self, booking_service):
        result = await booking_service.submit_booking(
            "00000000-0000-0000-0000-000000000000", student(), SlotChoice(MONDAY_9, 60), now=NOW
        )
        assert result.error == ErrorKind.NOT_FOUND

    async def test_email_failure_does_not_fail_booking(self, booking_service, coach, mailer):
        mailer.send = AsyncMock(side_effect=EmailDeliveryError("resend down"))

        result = await booking_service.submit_booking(
            str(coach.id), student(), SlotChoice(MONDAY_9, 60), now=NOW
        )
        assert result.ok


@pytest.mark.asyncio
class TestRequestReschedule:
    """Tests for request_reschedule"""

    async def test_creates_linked_pending_booking(self, booking_service, store, coach, notifications):
        original = store.seed_booking(coach, datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc))

        result = await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-12T14:00:00Z", 60), now=NOW
        )

        assert result.ok
        assert result.booking.status == "pending"
        assert result.booking.reschedule_of == original.id
        assert result.booking.student_email == original.student_email
        # Original keeps its slot until the reschedule is accepted
        assert original.status == "confirmed"
        assert notifications.enqueue.call_args.kwargs["event_type"] == "reschedule_requested"

    async def test_missing_original(self, booking_service):
        result = await booking_service.request_reschedule(
            "00000000-0000-0000-0000-000000000000", SlotChoice(MONDAY_9, 60), now=NOW
        )
        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.parametrize("status", ["pending", "declined", "cancelled", "completed"])
    async def test_only_confirmed_can_be_rescheduled(self, booking_service, store, coach, status):
        original = store.seed_booking(coach, datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc), status=status)

        result = await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-12T14:00:00Z", 60), now=NOW
        )
        assert result.error == ErrorKind.GUARD
        assert result.message == "Can only reschedule confirmed bookings"

    async def test_second_pending_reschedule_is_rejected(self, booking_service, store, coach):
        original = store.seed_booking(coach, datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc))
        await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-12T14:00:00Z", 60), now=NOW
        )

        result = await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-13T14:00:00Z", 60), now=NOW
        )
        assert result.error == ErrorKind.GUARD
        assert result.message == "A reschedule request is already pending"

    async def test_racing_reschedule_caught_by_unique_index(self, booking_service, store, coach):
        """The pre-check misses a concurrent insert; the store still refuses it"""
        original = store.seed_booking(coach, datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc))
        await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-12T14:00:00Z", 60), now=NOW
        )
        store.get_pending_reschedule = AsyncMock(return_value=None)

        result = await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-13T14:00:00Z", 60), now=NOW
        )
        assert result.error == ErrorKind.GUARD
        assert len([b for b in store.bookings.values() if b.status == "pending"]) == 1

    async def test_taken_slot_is_a_conflict(self, booking_service, store, coach):
        original = store.seed_booking(coach, datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc))
        store.seed_booking(coach, datetime(2024, 3, 12, 14, 0, tzinfo=timezone.utc), status="pending")

        result = await booking_service.request_reschedule(
            str(original.id), SlotChoice("2024-03-12T14:30:00Z", 60), now=NOW
        )
        assert result.error == ErrorKind.CONFLICT
