"""Booking status transitions and the calendar sync around them.

    pending   --accept-->   confirmed --complete--> completed
    pending   --decline-->  declined
    confirmed --cancel-->   cancelled

A reschedule is a new pending booking pointing at the confirmed original
through ``reschedule_of``; accepting it confirms the new row first and
then cancels the original.

The local status write always happens; calendar calls are best-effort
and only show up as ``warnings`` / ``needs_reconnect`` on the result.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from coachbook.core import config
from coachbook.integrations.email_client import EmailDeliveryError, EmailSender, email_sender
from coachbook.integrations.google_calendar.models import CalendarEvent
from coachbook.integrations.providers import CalendarProvider, resolve_calendar_provider
from coachbook.models import TERMINAL_STATUSES, BookingStatus
from coachbook.scheduling.intervals import extract_booked_intervals
from coachbook.scheduling.timezones import ensure_utc
from coachbook.services import emails
from coachbook.services.db_service import DBService
from coachbook.services.notifications import (
    REQUEST_CANCELLED,
    REQUEST_COMPLETED,
    REQUEST_CONFIRMED,
    REQUEST_DECLINED,
    RESCHEDULE_CONFIRMED,
    RESCHEDULE_DECLINED,
    NotificationService,
)
from coachbook.services.results import (
    BookingResult,
    DuplicateRescheduleError,
    SlotTakenError,
    StatusChangedError,
    SyncResult,
)

logger = logging.getLogger(__name__)

STATUS_CHANGED_MESSAGE = "Booking status changed concurrently"

ProviderResolver = Callable[[Any, str], Awaitable[CalendarProvider]]


def _sync_warning(sync: SyncResult) -> str:
    if sync.needs_reconnect:
        return f"Google Calendar needs to be reconnected ({sync.reason})"
    return f"Calendar sync failed ({sync.reason}); the booking was still updated"


class TransitionService:
    def __init__(
        self,
        db: DBService,
        notifications: Optional[NotificationService] = None,
        mailer: Optional[EmailSender] = None,
        provider_resolver: ProviderResolver = resolve_calendar_provider,
        timeout_seconds: Optional[float] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService()
        self.mailer = mailer or email_sender
        self.provider_resolver = provider_resolver
        self.timeout_seconds = timeout_seconds or config.CALENDAR_TIMEOUT_SECONDS

    # ==================== ACCEPT ====================

    async def accept(self, booking_id: str, meeting_url: Optional[str] = None) -> BookingResult:
        """
        pending -> confirmed, then sync the coach's calendar.

        A ``meeting_url`` supplied by the coach replaces calendar sync
        entirely. A booking that already carries a calendar event keeps
        it. A reschedule whose confirmed original has an event moves that
        event; anything else, including a move that failed, gets a new
        event with a Meet link.
        """
        booking = await self.db.get_booking(booking_id)
        if not booking:
            return BookingResult.not_found()
        if booking.status == BookingStatus.CONFIRMED.value:
            # Repeated accept; calendar already handled by the first one
            return BookingResult.success(booking)
        if booking.status in TERMINAL_STATUSES:
            return BookingResult.guard(f"Cannot accept a {booking.status} booking")

        data = {"status": BookingStatus.CONFIRMED.value}
        manual_link = meeting_url.strip() if meeting_url and meeting_url.strip() else None
        if manual_link:
            data["meeting_url"] = manual_link

        try:
            booking = await self.db.transition_status(booking_id, BookingStatus.PENDING.value, data)
        except StatusChangedError:
            return BookingResult.guard(STATUS_CHANGED_MESSAGE)
        logger.info(f"Booking {booking.id} confirmed")

        result = BookingResult.success(booking)
        coach = await self.db.get_coach(booking.coach_id)
        coach_timezone = (coach.timezone if coach else None) or "UTC"

        original = None
        if booking.reschedule_of:
            original = await self.db.get_booking(booking.reschedule_of)

        if manual_link:
            logger.info(f"Booking {booking.id} uses a manual meeting link; skipping calendar sync")
        elif booking.calendar_event_id:
            logger.info(f"Booking {booking.id} already has calendar event {booking.calendar_event_id}")
        elif booking.scheduled_start is None:
            logger.warning(f"Booking {booking.id} has no scheduled time; skipping calendar sync")
            result.warnings.append("Booking has no scheduled time; calendar was not updated")
        else:
            provider = await self.provider_resolver(self.db, str(booking.coach_id))
            sync = None
            # Only a live original still owns its event
            if (
                original is not None
                and original.status == BookingStatus.CONFIRMED.value
                and original.calendar_event_id
            ):
                sync = await self._sync(
                    provider.patch_event_time(
                        str(booking.coach_id),
                        original.calendar_event_id,
                        booking.scheduled_start,
                        booking.duration_minutes,
                        coach_timezone,
                    )
                )
                if sync.ok:
                    booking = await self.db.update_booking(
                        str(booking.id),
                        {
                            "calendar_event_id": original.calendar_event_id,
                            "calendar_provider": original.calendar_provider or provider.name,
                            "meeting_url": sync.conference_url or original.meeting_url,
                        },
                    )
                elif not sync.needs_reconnect:
                    logger.warning(
                        f"Could not move event {original.calendar_event_id} to booking {booking.id} "
                        f"({sync.reason}); creating a new one"
                    )
                    sync = None
            if sync is None:
                sync = await self._sync(
                    provider.create_event(
                        str(booking.coach_id),
                        self._calendar_event(booking, coach, coach_timezone),
                    )
                )
                if sync.ok and sync.event_id:
                    booking = await self.db.update_booking(
                        str(booking.id),
                        {
                            "calendar_event_id": sync.event_id,
                            "calendar_provider": provider.name,
                            "meeting_url": sync.conference_url,
                        },
                    )
            result.booking = booking
            await self._record_sync(result, sync, booking.coach_id)

        if original is not None:
            await self._cancel_original(original, booking, result)

        await self._notify(
            booking,
            RESCHEDULE_CONFIRMED if original is not None else REQUEST_CONFIRMED,
        )
        if coach:
            await self._send(
                booking.student_email,
                *emails.session_confirmed(
                    booking.student_name,
                    coach.name,
                    booking.scheduled_start,
                    booking.duration_minutes,
                    booking.student_timezone or "UTC",
                    booking.meeting_url,
                ),
                reply_to=coach.email,
            )
        return result

    async def _cancel_original(self, original: Any, booking: Any, result: BookingResult) -> None:
        """
        Second write of a reschedule handoff; never undoes the confirmation.

        If the original's event was not carried over to the new booking it
        is deleted, so the old time doesn't linger on the coach's calendar.
        """
        if original.status != BookingStatus.CONFIRMED.value:
            logger.info(f"Original booking {original.id} is already {original.status}; leaving it")
            return

        event_id = original.calendar_event_id
        carried = bool(event_id) and booking.calendar_event_id == event_id
        data = {"status": BookingStatus.CANCELLED.value}
        if carried:
            data["calendar_event_id"] = None
        try:
            await self.db.transition_status(str(original.id), BookingStatus.CONFIRMED.value, data)
        except StatusChangedError:
            logger.error(
                f"Reschedule handoff could not cancel original booking {original.id}: "
                f"status is no longer confirmed"
            )
            return
        logger.info(f"Original booking {original.id} cancelled by reschedule")

        if event_id and not carried:
            provider = await self.provider_resolver(self.db, str(original.coach_id))
            sync = await self._sync(provider.delete_event(str(original.coach_id), event_id))
            if sync.ok:
                await self.db.update_booking(str(original.id), {"calendar_event_id": None})
            else:
                logger.warning(f"Could not delete event {event_id} of original booking {original.id}")
            await self._record_sync(result, sync, original.coach_id)

    # ==================== DECLINE / CANCEL / COMPLETE ====================

    async def decline(self, booking_id: str) -> BookingResult:
        booking = await self.db.get_booking(booking_id)
        if not booking:
            return BookingResult.not_found()
        if booking.status != BookingStatus.PENDING.value:
            return BookingResult.guard("Only pending requests can be declined")

        try:
            booking = await self.db.transition_status(
                booking_id,
                BookingStatus.PENDING.value,
                {"status": BookingStatus.DECLINED.value},
            )
        except StatusChangedError:
            return BookingResult.guard(STATUS_CHANGED_MESSAGE)
        logger.info(f"Booking {booking.id} declined")

        await self._notify(booking, RESCHEDULE_DECLINED if booking.reschedule_of else REQUEST_DECLINED)
        coach = await self.db.get_coach(booking.coach_id)
        if coach:
            await self._send(
                booking.student_email,
                *emails.session_declined(booking.student_name, coach.name),
                reply_to=coach.email,
            )
        return BookingResult.success(booking)

    async def cancel(self, booking_id: str) -> BookingResult:
        booking = await self.db.get_booking(booking_id)
        if not booking:
            return BookingResult.not_found()
        if booking.status != BookingStatus.CONFIRMED.value:
            return BookingResult.guard("Only confirmed bookings can be cancelled")

        try:
            booking = await self.db.transition_status(
                booking_id,
                BookingStatus.CONFIRMED.value,
                {"status": BookingStatus.CANCELLED.value},
            )
        except StatusChangedError:
            return BookingResult.guard(STATUS_CHANGED_MESSAGE)
        logger.info(f"Booking {booking.id} cancelled")

        result = BookingResult.success(booking)
        if booking.calendar_event_id:
            provider = await self.provider_resolver(self.db, str(booking.coach_id))
            sync = await self._sync(
                provider.delete_event(str(booking.coach_id), booking.calendar_event_id)
            )
            if sync.ok:
                booking = await self.db.update_booking(str(booking.id), {"calendar_event_id": None}) or booking
                result.booking = booking
            await self._record_sync(result, sync, booking.coach_id)

        await self._notify(booking, REQUEST_CANCELLED)
        coach = await self.db.get_coach(booking.coach_id)
        if coach:
            await self._send(
                booking.student_email,
                *emails.session_cancelled(
                    booking.student_name,
                    coach.name,
                    booking.scheduled_start,
                    booking.student_timezone or "UTC",
                ),
                reply_to=coach.email,
            )
        return result

    async def complete(self, booking_id: str, now: Optional[datetime] = None) -> BookingResult:
        """confirmed -> completed, only once the session has started."""
        now = ensure_utc(now or datetime.now(timezone.utc))

        booking = await self.db.get_booking(booking_id)
        if not booking:
            return BookingResult.not_found()
        if booking.status != BookingStatus.CONFIRMED.value:
            return BookingResult.guard("Only confirmed bookings can be completed")

        intervals = extract_booked_intervals([booking])
        if not intervals:
            return BookingResult.guard("Booking has no scheduled time")
        if not intervals[0].start < now:
            return BookingResult.guard("Cannot complete a session that hasn't started yet")

        try:
            booking = await self.db.transition_status(
                booking_id,
                BookingStatus.CONFIRMED.value,
                {"status": BookingStatus.COMPLETED.value},
            )
        except StatusChangedError:
            return BookingResult.guard(STATUS_CHANGED_MESSAGE)
        logger.info(f"Booking {booking.id} completed")

        await self._notify(booking, REQUEST_COMPLETED)
        return BookingResult.success(booking)

    async def reset_to_pending(self, booking_id: str) -> BookingResult:
        """
        Operator override: declined or cancelled -> pending.

        The row re-enters the no-overlap constraint, so this fails with a
        conflict when the slot has been taken since.
        """
        booking = await self.db.get_booking(booking_id)
        if not booking:
            return BookingResult.not_found()
        if booking.status not in (BookingStatus.DECLINED.value, BookingStatus.CANCELLED.value):
            return BookingResult.guard("Only declined or cancelled bookings can be reset")

        try:
            booking = await self.db.transition_status(
                booking_id,
                booking.status,
                {"status": BookingStatus.PENDING.value},
            )
        except StatusChangedError:
            return BookingResult.guard(STATUS_CHANGED_MESSAGE)
        except SlotTakenError:
            return BookingResult.conflict()
        except DuplicateRescheduleError:
            return BookingResult.guard("Another reschedule request is already pending")

        logger.info(f"Booking {booking.id} reset to pending")
        return BookingResult.success(booking)

    # ==================== HELPERS ====================

    async def _sync(self, call: Awaitable[SyncResult]) -> SyncResult:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Calendar call timed out after {self.timeout_seconds}s")
            return SyncResult.retryable("timeout")

    async def _record_sync(self, result: BookingResult, sync: SyncResult, coach_id: Any) -> None:
        if sync.ok:
            return
        warning = _sync_warning(sync)
        if warning not in result.warnings:
            result.warnings.append(warning)
        if sync.needs_reconnect:
            result.needs_reconnect = True
            await self.db.update_google_connection(str(coach_id), {"needs_reconnect": True})
            logger.warning(f"Coach {coach_id} calendar grant flagged for reconnect: {sync.reason}")

    @staticmethod
    def _calendar_event(booking: Any, coach: Any, coach_timezone: str) -> CalendarEvent:
        coach_name = coach.name if coach else "Coach"
        return CalendarEvent(
            summary=f"Coaching session - {booking.student_name}",
            description=(
                f"Session between {coach_name} and {booking.student_name} "
                f"({booking.student_email}).\nBooking: {booking.id}"
            ),
            start_time=booking.scheduled_start,
            duration_minutes=booking.duration_minutes,
            timezone=coach_timezone,
            booking_id=str(booking.id),
            attendees=[booking.student_email],
        )

    async def _notify(self, booking: Any, event_type: str) -> None:
        await self.notifications.enqueue(
            coach_id=booking.coach_id,
            event_type=event_type,
            booking_id=booking.id,
            student_name=booking.student_name,
            student_email=booking.student_email,
            metadata={
                "scheduled_start": booking.scheduled_start.isoformat() if booking.scheduled_start else None,
                "reschedule_of": str(booking.reschedule_of) if booking.reschedule_of else None,
            },
        )

    async def _send(self, to: str, subject: str, text: str, reply_to: Optional[str] = None) -> None:
        try:
            await self.mailer.send(to, subject, text, reply_to=reply_to)
        except EmailDeliveryError as e:
            logger.error(f"Email to {to} failed: {e}")
