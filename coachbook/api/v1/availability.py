from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from coachbook.api.v1.deps import get_availability_service
from coachbook.scheduling.timezones import InvalidTimezoneError, resolve_zone
from coachbook.services.availability_service import AvailabilityService, CoachNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


@router.get("/coaches/{coach_id}/availability")
async def get_availability(
    coach_id: str,
    duration: int = Query(60, gt=0, le=24 * 60),
    timezone_name: str = Query("UTC", alias="timezone"),
    exclude_booking_id: Optional[str] = None,
    service: AvailabilityService = Depends(get_availability_service),
):
    """
    Bookable slots for the next week, grouped by day in the requester's zone.

    Pass ``exclude_booking_id`` when rescheduling so the booking being
    moved doesn't block the times around it.
    """
    try:
        resolve_zone(timezone_name)
    except InvalidTimezoneError:
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {timezone_name}")

    try:
        view = await service.get_available_slots(
            coach_id=coach_id,
            duration_minutes=duration,
            requester_timezone=timezone_name,
            now=datetime.now(timezone.utc),
            exclude_booking_id=exclude_booking_id,
        )
    except CoachNotFoundError:
        raise HTTPException(status_code=404, detail="Coach not found")

    return view.to_dict()
