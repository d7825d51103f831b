import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from coachbook.core import config
from coachbook.scheduling import (
    AvailabilityRule,
    Slot,
    extract_booked_intervals,
    generate_slots,
    group_slots_by_date,
)
from coachbook.services.db_service import DBService

logger = logging.getLogger(__name__)


class CoachNotFoundError(LookupError):
    pass


@dataclass
class AvailabilityView:
    coach_timezone: str
    slots: List[Slot] = field(default_factory=list)

    @property
    def days(self) -> dict:
        return group_slots_by_date(self.slots)

    def to_dict(self) -> dict:
        return {
            "coach_timezone": self.coach_timezone,
            "slots": [slot.to_dict() for slot in self.slots],
            "days": {
                label: [slot.to_dict() for slot in day_slots]
                for label, day_slots in self.days.items()
            },
        }


class AvailabilityService:
    """Reads a coach's rules and active bookings and turns them into slots."""

    def __init__(self, db: DBService):
        self.db = db

    async def get_available_slots(
        self,
        coach_id: str,
        duration_minutes: int,
        requester_timezone: str,
        now: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> AvailabilityView:
        """
        Bookable slots for a coach over the configured horizon.

        ``exclude_booking_id`` leaves one booking out of the busy set so a
        student rescheduling can see the times around their own session.

        Raises:
            CoachNotFoundError: unknown coach
            ValueError: bad duration or timezone
        """
        coach = await self.db.get_coach(coach_id)
        if not coach:
            raise CoachNotFoundError(f"Coach {coach_id} not found")

        rule_rows = await self.db.get_availability_rules(coach_id)
        rules = []
        for row in rule_rows:
            try:
                rules.append(AvailabilityRule.from_row(row))
            except ValueError as e:
                logger.warning(f"Ignoring invalid availability rule for coach {coach_id}: {e}")

        booked_rows = await self.db.get_active_bookings(coach_id, exclude_booking_id=exclude_booking_id)
        booked = extract_booked_intervals(booked_rows)

        coach_timezone = coach.timezone or "UTC"
        slots = generate_slots(
            rules=rules,
            duration_minutes=duration_minutes,
            booked=booked,
            coach_timezone=coach_timezone,
            requester_timezone=requester_timezone,
            now=now,
            min_notice_minutes=coach.min_notice_minutes or 0,
            buffer_minutes=coach.buffer_minutes or 0,
            horizon_days=config.SLOT_HORIZON_DAYS,
            granularity_minutes=config.SLOT_GRANULARITY_MINUTES,
        )
        logger.debug(
            f"Coach {coach_id}: {len(rules)} rules, {len(booked)} busy intervals, {len(slots)} slots"
        )
        return AvailabilityView(coach_timezone=coach_timezone, slots=slots)
