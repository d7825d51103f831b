"""Transactional email bodies for booking events.

Each builder returns ``(subject, text)``; times are rendered in the
recipient's own zone.
"""

from datetime import datetime
from typing import Optional, Tuple

from coachbook.integrations.email_client import app_url
from coachbook.scheduling.timezones import format_full_datetime

Message = Tuple[str, str]


def request_sent_to_student(
    student_name: str,
    coach_name: str,
    start: datetime,
    duration_minutes: int,
    student_timezone: str,
) -> Message:
    subject = "Your session request has been sent"
    text = f"""Hi {student_name},

Your session request has been sent to {coach_name}.

Request details:
- Coach: {coach_name}
- Time: {format_full_datetime(start, student_timezone)}
- Duration: {duration_minutes} minutes
- Your timezone: {student_timezone}

{coach_name} will review your request and you'll receive an email once they respond.
"""
    return subject, text


def request_received_by_coach(
    coach_name: str,
    student_name: str,
    student_email: str,
    start: datetime,
    duration_minutes: int,
    student_timezone: str,
    coach_timezone: str,
) -> Message:
    subject = f"New session request from {student_name}"
    text = f"""Hi {coach_name},

You have a new session request!

Student details:
- Name: {student_name}
- Email: {student_email}
- Requested time: {format_full_datetime(start, coach_timezone)}
- Duration: {duration_minutes} minutes
- Student timezone: {student_timezone}

Review and respond here:
{app_url('/app/requests')}
"""
    return subject, text


def reschedule_sent_to_student(
    student_name: str,
    coach_name: str,
    old_start: Optional[datetime],
    new_start: datetime,
    duration_minutes: int,
    student_timezone: str,
) -> Message:
    old_line = format_full_datetime(old_start, student_timezone) if old_start else "unknown"
    subject = "Reschedule request sent"
    text = f"""Hi {student_name},

Your reschedule request has been sent to {coach_name}.

Current session: {old_line}
Requested new time: {format_full_datetime(new_start, student_timezone)}
Duration: {duration_minutes} minutes

The coach will review and confirm your request shortly. You'll receive an email once they respond.
"""
    return subject, text


def reschedule_received_by_coach(
    coach_name: str,
    student_name: str,
    old_start: Optional[datetime],
    new_start: datetime,
    duration_minutes: int,
    coach_timezone: str,
) -> Message:
    old_line = format_full_datetime(old_start, coach_timezone) if old_start else "unknown"
    subject = f"Reschedule request from {student_name}"
    text = f"""Hi {coach_name},

{student_name} would like to reschedule their session.

Current time: {old_line}
Requested new time: {format_full_datetime(new_start, coach_timezone)}
Duration: {duration_minutes} minutes

Review and respond here:
{app_url('/app/requests')}
"""
    return subject, text


def session_confirmed(
    student_name: str,
    coach_name: str,
    start: Optional[datetime],
    duration_minutes: int,
    student_timezone: str,
    meeting_url: Optional[str],
) -> Message:
    subject = f"Your session with {coach_name} is confirmed"
    link_block = (
        f"Join the session:\n{meeting_url}"
        if meeting_url
        else f"{coach_name} will share the meeting link before the session."
    )
    text = f"""Hi {student_name},

Great news! Your session has been confirmed.

Session details:
- Coach: {coach_name}
- Time: {format_full_datetime(start, student_timezone) if start else 'to be confirmed'}
- Duration: {duration_minutes} minutes
- Timezone: {student_timezone}

{link_block}
"""
    return subject, text


def session_declined(student_name: str, coach_name: str) -> Message:
    subject = f"Booking request update from {coach_name}"
    text = f"""Hi {student_name},

Unfortunately {coach_name} isn't able to take this session request.

You're welcome to pick another time from their booking page.
"""
    return subject, text


def session_cancelled(
    student_name: str,
    coach_name: str,
    start: Optional[datetime],
    student_timezone: str,
) -> Message:
    when = format_full_datetime(start, student_timezone) if start else "your upcoming session"
    subject = f"Your session with {coach_name} was cancelled"
    text = f"""Hi {student_name},

Your session with {coach_name} on {when} has been cancelled.
"""
    return subject, text
