from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from coachbook.scheduling.timezones import parse_wall_time

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass(frozen=True)
class AvailabilityRule:
    """One weekly open window in the coach's own timezone.

    ``day_of_week`` uses 0 for Sunday through 6 for Saturday. Times are
    ``HH:MM`` wall-clock strings; anything finer than a minute is dropped.
    """

    day_of_week: int
    start_time: str
    end_time: str

    def __post_init__(self) -> None:
        if not isinstance(self.day_of_week, int) or not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be 0-6, got {self.day_of_week!r}")
        start = parse_wall_time(self.start_time)
        end = parse_wall_time(self.end_time)
        if start >= end:
            raise ValueError(
                f"start_time must be before end_time ({self.start_time} >= {self.end_time})"
            )
        object.__setattr__(self, "start_time", start.strftime("%H:%M"))
        object.__setattr__(self, "end_time", end.strftime("%H:%M"))

    @property
    def start_minutes(self) -> int:
        hour, minute = self.start_time.split(":")
        return int(hour) * 60 + int(minute)

    @property
    def end_minutes(self) -> int:
        hour, minute = self.end_time.split(":")
        return int(hour) * 60 + int(minute)

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    @classmethod
    def from_row(cls, row: Any) -> "AvailabilityRule":
        """Build a rule from a DB row, ORM object or plain mapping."""
        if isinstance(row, dict):
            return cls(
                day_of_week=int(row["day_of_week"]),
                start_time=str(row["start_time"]),
                end_time=str(row["end_time"]),
            )
        return cls(
            day_of_week=int(row.day_of_week),
            start_time=str(row.start_time),
            end_time=str(row.end_time),
        )


def rules_for_day(rules: Iterable[AvailabilityRule], day_of_week: int) -> list[AvailabilityRule]:
    return [rule for rule in rules if rule.day_of_week == day_of_week]
