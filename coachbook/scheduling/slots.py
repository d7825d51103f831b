"""Bookable slot generation.

Expands a coach's weekly availability rules over a short rolling horizon
into concrete start instants, then removes anything in the past, inside
the minimum-notice window, or colliding with an existing booking (padded
by the coach's buffer). The function is pure: ``now`` is passed in and
the same inputs always give the same slots.

This is a UX filter only. Two students can still race for the same slot
between page load and submit; the exclusion constraint on
``booking_requests`` settles that.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Iterable, Sequence

from coachbook.scheduling.intervals import BookedInterval
from coachbook.scheduling.rules import AvailabilityRule, rules_for_day
from coachbook.scheduling.timezones import (
    ensure_utc,
    format_day_label,
    format_time,
    instant_to_wall,
    local_date,
    resolve_zone,
    to_epoch_ms,
    wall_to_instant,
)

HORIZON_DAYS = 7
GRANULARITY_MINUTES = 30


@dataclass(frozen=True)
class Slot:
    start: datetime
    duration_minutes: int
    coach_local_label: str
    label: str
    display_time: str
    display_date: str

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def start_ms(self) -> int:
        return to_epoch_ms(self.start)

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "start_ms": self.start_ms,
            "duration_minutes": self.duration_minutes,
            "coach_local_label": self.coach_local_label,
            "label": self.label,
            "display_time": self.display_time,
            "display_date": self.display_date,
        }


def is_slot_blocked(
    start: datetime,
    duration_minutes: int,
    booked: Iterable[BookedInterval],
    buffer_minutes: int = 0,
) -> bool:
    end = start + timedelta(minutes=duration_minutes)
    buffer = timedelta(minutes=buffer_minutes)
    return any(interval.overlaps(start, end, buffer) for interval in booked)


def generate_slots(
    rules: Sequence[AvailabilityRule],
    duration_minutes: int,
    booked: Sequence[BookedInterval],
    coach_timezone: str,
    requester_timezone: str,
    now: datetime,
    min_notice_minutes: int = 0,
    buffer_minutes: int = 0,
    horizon_days: int = HORIZON_DAYS,
    granularity_minutes: int = GRANULARITY_MINUTES,
) -> list[Slot]:
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")

    # Fail fast on bad zones before doing any work.
    resolve_zone(coach_timezone)
    resolve_zone(requester_timezone)

    now = ensure_utc(now)
    earliest = now + timedelta(minutes=max(min_notice_minutes, 0))
    buffer_minutes = max(buffer_minutes, 0)

    # Step over calendar days in the coach zone rather than 24h blocks so a
    # 23h or 25h DST day is never skipped or visited twice.
    first_day = local_date(now, coach_timezone)
    starts: set[datetime] = set()
    for offset in range(horizon_days):
        coach_day = first_day + timedelta(days=offset)
        weekday = (coach_day.weekday() + 1) % 7

        for rule in rules_for_day(rules, weekday):
            minutes = rule.start_minutes
            while minutes + duration_minutes <= rule.end_minutes:
                wall = time(hour=minutes // 60, minute=minutes % 60)
                minutes += granularity_minutes

                start = wall_to_instant(coach_day, wall, coach_timezone)
                if start <= now or start < earliest:
                    continue
                if is_slot_blocked(start, duration_minutes, booked, buffer_minutes):
                    continue
                starts.add(start)

    return [
        _build_slot(start, duration_minutes, coach_timezone, requester_timezone)
        for start in sorted(starts)
    ]


def _build_slot(
    start: datetime,
    duration_minutes: int,
    coach_timezone: str,
    requester_timezone: str,
) -> Slot:
    requester_wall = instant_to_wall(start, requester_timezone)
    return Slot(
        start=start,
        duration_minutes=duration_minutes,
        coach_local_label=instant_to_wall(start, coach_timezone).label,
        label=format_day_label(start, requester_timezone),
        display_time=format_time(start, requester_timezone),
        display_date=requester_wall.day.isoformat(),
    )


def group_slots_by_date(slots: Iterable[Slot]) -> dict[str, list[Slot]]:
    """Group slots by their display-local day label, keeping order."""
    grouped: dict[str, list[Slot]] = {}
    for slot in slots:
        grouped.setdefault(slot.label, []).append(slot)
    return grouped
