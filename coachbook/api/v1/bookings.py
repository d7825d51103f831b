from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from coachbook.api.v1.deps import get_booking_service, get_transition_service
from coachbook.services.booking_service import BookingService, SlotChoice, StudentInfo
from coachbook.services.results import BookingResult, ErrorKind
from coachbook.services.transitions import TransitionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])

_ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.GUARD: 422,
}


class SlotPayload(BaseModel):
    datetime: str
    duration_minutes: int = 60


class BookingCreate(BaseModel):
    coach_id: str
    student_name: str
    student_email: str
    student_timezone: str = "UTC"
    slot: SlotPayload


class AcceptPayload(BaseModel):
    meeting_url: Optional[str] = None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_booking(booking: Any) -> dict:
    return {
        "id": str(booking.id),
        "coach_id": str(booking.coach_id),
        "student_name": booking.student_name,
        "student_email": booking.student_email,
        "student_timezone": booking.student_timezone,
        "status": booking.status,
        "scheduled_start": _iso(booking.scheduled_start),
        "scheduled_end": _iso(booking.scheduled_end),
        "duration_minutes": booking.duration_minutes,
        "reschedule_of": str(booking.reschedule_of) if booking.reschedule_of else None,
        "calendar_event_id": booking.calendar_event_id,
        "meeting_url": booking.meeting_url,
    }


def _respond(result: BookingResult) -> dict:
    if not result.ok:
        raise HTTPException(
            status_code=_ERROR_STATUS.get(result.error, 400),
            detail={"error": result.error.value, "reason": result.message},
        )
    return {
        "booking": serialize_booking(result.booking) if result.booking is not None else None,
        "warnings": result.warnings,
        "needs_reconnect": result.needs_reconnect,
    }


@router.post("/bookings", status_code=201)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Request a session; the slot is held while the request is pending."""
    result = await service.submit_booking(
        coach_id=payload.coach_id,
        student=StudentInfo(
            name=payload.student_name,
            email=payload.student_email,
            timezone=payload.student_timezone,
        ),
        slot=SlotChoice(
            datetime=payload.slot.datetime,
            duration_minutes=payload.slot.duration_minutes,
        ),
        now=datetime.now(timezone.utc),
    )
    return _respond(result)


@router.post("/bookings/{booking_id}/reschedule", status_code=201)
async def reschedule_booking(
    booking_id: str,
    payload: SlotPayload,
    service: BookingService = Depends(get_booking_service),
):
    result = await service.request_reschedule(
        booking_id,
        SlotChoice(datetime=payload.datetime, duration_minutes=payload.duration_minutes),
        now=datetime.now(timezone.utc),
    )
    return _respond(result)


@router.post("/bookings/{booking_id}/accept")
async def accept_booking(
    booking_id: str,
    payload: Optional[AcceptPayload] = None,
    service: TransitionService = Depends(get_transition_service),
):
    meeting_url = payload.meeting_url if payload else None
    return _respond(await service.accept(booking_id, meeting_url=meeting_url))


@router.post("/bookings/{booking_id}/decline")
async def decline_booking(
    booking_id: str,
    service: TransitionService = Depends(get_transition_service),
):
    return _respond(await service.decline(booking_id))


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    service: TransitionService = Depends(get_transition_service),
):
    return _respond(await service.cancel(booking_id))


@router.post("/bookings/{booking_id}/complete")
async def complete_booking(
    booking_id: str,
    service: TransitionService = Depends(get_transition_service),
):
    return _respond(await service.complete(booking_id, now=datetime.now(timezone.utc)))


@router.post("/bookings/{booking_id}/reset")
async def reset_booking(
    booking_id: str,
    service: TransitionService = Depends(get_transition_service),
):
    """Move a declined or cancelled booking back to pending."""
    return _respond(await service.reset_to_pending(booking_id))
