import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from coachbook.integrations.email_client import EmailDeliveryError, EmailSender, email_sender
from coachbook.models import BookingStatus
from coachbook.scheduling.timezones import InvalidTimezoneError, ensure_utc, parse_instant, resolve_zone
from coachbook.services import emails
from coachbook.services.db_service import DBService
from coachbook.services.notifications import (
    REQUEST_CREATED,
    RESCHEDULE_REQUESTED,
    NotificationService,
)
from coachbook.services.results import BookingResult, DuplicateRescheduleError, SlotTakenError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

RESCHEDULE_NOT_CONFIRMED = "Can only reschedule confirmed bookings"
RESCHEDULE_ALREADY_PENDING = "A reschedule request is already pending"


@dataclass
class StudentInfo:
    name: str
    email: str
    timezone: str = "UTC"


@dataclass
class SlotChoice:
    datetime: Union[str, datetime]
    duration_minutes: int


def _validate_slot(slot: SlotChoice, now: datetime) -> tuple[Optional[datetime], Optional[str]]:
    """Returns ``(start, None)`` or ``(None, message)``"""
    try:
        duration = int(slot.duration_minutes)
    except (TypeError, ValueError):
        return None, "Duration must be a whole number of minutes"
    if duration <= 0:
        return None, "Duration must be positive"

    try:
        start = parse_instant(slot.datetime)
    except ValueError:
        return None, "Invalid date/time for the selected slot"

    if start <= ensure_utc(now):
        return None, "Selected time is in the past"
    return start, None


class BookingService:
    """Creates pending booking requests, holding their slot on insert.

    The insert is the conflict check: the exclusion constraint on
    ``booking_requests`` rejects a second active booking over the same
    time, and that rejection comes back as a ``conflict`` result.
    """

    def __init__(
        self,
        db: DBService,
        notifications: Optional[NotificationService] = None,
        mailer: Optional[EmailSender] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService()
        self.mailer = mailer or email_sender

    async def submit_booking(
        self,
        coach_id: str,
        student: StudentInfo,
        slot: SlotChoice,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        now = now or datetime.now(timezone.utc)

        if not student.name or not student.name.strip():
            return BookingResult.validation("Name is required")
        if not student.email or not EMAIL_PATTERN.match(student.email.strip()):
            return BookingResult.validation("A valid email address is required")
        try:
            resolve_zone(student.timezone)
        except InvalidTimezoneError:
            return BookingResult.validation(f"Unknown timezone: {student.timezone}")

        start, error = _validate_slot(slot, now)
        if error:
            return BookingResult.validation(error)
        duration = int(slot.duration_minutes)

        coach = await self.db.get_coach(coach_id)
        if not coach:
            return BookingResult.not_found("Coach not found")

        try:
            booking = await self.db.insert_booking(
                self._booking_row(coach.id, student, start, duration)
            )
        except SlotTakenError:
            logger.info(f"Slot {start.isoformat()} for coach {coach_id} was just taken")
            return BookingResult.conflict()

        logger.info(f"Booking {booking.id} created for coach {coach_id} at {start.isoformat()}")

        await self.notifications.enqueue(
            coach_id=coach.id,
            event_type=REQUEST_CREATED,
            booking_id=booking.id,
            student_name=student.name,
            student_email=student.email,
            metadata={"scheduled_start": start.isoformat(), "duration_minutes": duration},
        )
        await self._send(
            student.email,
            *emails.request_sent_to_student(
                student.name, coach.name, start, duration, student.timezone
            ),
            reply_to=coach.email,
        )
        if coach.email:
            await self._send(
                coach.email,
                *emails.request_received_by_coach(
                    coach.name,
                    student.name,
                    student.email,
                    start,
                    duration,
                    student.timezone,
                    coach.timezone or "UTC",
                ),
                reply_to=student.email,
            )

        return BookingResult.success(booking)

    async def request_reschedule(
        self,
        original_booking_id: str,
        slot: SlotChoice,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """Open a pending reschedule for a confirmed booking.

        The original keeps its slot until the new request is accepted.
        """
        now = now or datetime.now(timezone.utc)

        original = await self.db.get_booking(original_booking_id)
        if not original:
            return BookingResult.not_found()
        if original.status != BookingStatus.CONFIRMED.value:
            return BookingResult.guard(RESCHEDULE_NOT_CONFIRMED)

        start, error = _validate_slot(slot, now)
        if error:
            return BookingResult.validation(error)
        duration = int(slot.duration_minutes)

        if await self.db.get_pending_reschedule(original_booking_id):
            return BookingResult.guard(RESCHEDULE_ALREADY_PENDING)

        student = StudentInfo(
            name=original.student_name,
            email=original.student_email,
            timezone=original.student_timezone or "UTC",
        )
        row = self._booking_row(original.coach_id, student, start, duration)
        row["reschedule_of"] = original.id

        try:
            booking = await self.db.insert_booking(row)
        except SlotTakenError:
            logger.info(f"Reschedule slot {start.isoformat()} for booking {original_booking_id} was just taken")
            return BookingResult.conflict()
        except DuplicateRescheduleError:
            return BookingResult.guard(RESCHEDULE_ALREADY_PENDING)

        logger.info(f"Reschedule request {booking.id} created for booking {original_booking_id}")

        await self.notifications.enqueue(
            coach_id=original.coach_id,
            event_type=RESCHEDULE_REQUESTED,
            booking_id=booking.id,
            student_name=student.name,
            student_email=student.email,
            metadata={
                "original_booking_id": str(original.id),
                "original_start": original.scheduled_start.isoformat() if original.scheduled_start else None,
                "new_start": start.isoformat(),
            },
        )

        coach = await self.db.get_coach(original.coach_id)
        if coach:
            await self._send(
                student.email,
                *emails.reschedule_sent_to_student(
                    student.name, coach.name, original.scheduled_start, start, duration, student.timezone
                ),
                reply_to=coach.email,
            )
            if coach.email:
                await self._send(
                    coach.email,
                    *emails.reschedule_received_by_coach(
                        coach.name, student.name, original.scheduled_start, start, duration,
                        coach.timezone or "UTC",
                    ),
                    reply_to=student.email,
                )

        return BookingResult.success(booking)

    @staticmethod
    def _booking_row(coach_id: Any, student: StudentInfo, start: datetime, duration: int) -> dict:
        return {
            "coach_id": coach_id,
            "student_name": student.name.strip(),
            "student_email": student.email.strip(),
            "student_timezone": student.timezone,
            "requested_times": [{"datetime": start.isoformat(), "duration_minutes": duration}],
            "scheduled_start": start,
            "scheduled_end": start + timedelta(minutes=duration),
            "duration_minutes": duration,
            "status": BookingStatus.PENDING.value,
        }

    async def _send(self, to: str, subject: str, text: str, reply_to: Optional[str] = None) -> None:
        try:
            await self.mailer.send(to, subject, text, reply_to=reply_to)
        except EmailDeliveryError as e:
            logger.error(f"Email to {to} failed: {e}")
