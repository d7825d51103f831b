"""Normalise stored booking rows into absolute busy intervals.

Booking rows have carried their time in three shapes over the life of
the product:

* ``scheduled_start`` / ``scheduled_end`` columns (current rows),
* ``requested_times`` as a list of ``{"datetime", "duration_minutes"}``
  objects,
* ``requested_times`` as a list of bare ISO strings (oldest rows).

Each shape is parsed into its own tagged variant here and immediately
reduced to a :class:`BookedInterval`; nothing downstream sees the raw
shapes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

from coachbook.scheduling.timezones import parse_instant

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60


@dataclass(frozen=True)
class BookedInterval:
    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime, buffer: timedelta = timedelta(0)) -> bool:
        """Half-open overlap test with this interval padded by ``buffer`` on both sides."""
        return start < self.end + buffer and end > self.start - buffer


@dataclass(frozen=True)
class ScheduledSlot:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class StructuredSlot:
    datetime: datetime
    duration_minutes: int


@dataclass(frozen=True)
class LegacySlot:
    datetime: datetime


SlotShape = Union[ScheduledSlot, StructuredSlot, LegacySlot]


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def _duration(value: Any) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return DEFAULT_DURATION_MINUTES
    return minutes if minutes > 0 else DEFAULT_DURATION_MINUTES


def parse_slot_shape(row: Any) -> Optional[SlotShape]:
    """Classify a booking row into one of the known slot shapes.

    Returns ``None`` when the row carries no time at all. Raises
    ``ValueError`` when a time is present but cannot be parsed.
    """
    scheduled_start = _field(row, "scheduled_start")
    if scheduled_start:
        start = parse_instant(scheduled_start)
        scheduled_end = _field(row, "scheduled_end")
        if scheduled_end:
            end = parse_instant(scheduled_end)
        else:
            end = start + timedelta(minutes=_duration(_field(row, "duration_minutes")))
        if end <= start:
            raise ValueError(f"scheduled_end {end.isoformat()} is not after scheduled_start")
        return ScheduledSlot(start=start, end=end)

    requested = _field(row, "requested_times")
    if not requested:
        return None
    first = requested[0] if isinstance(requested, (list, tuple)) else requested

    if isinstance(first, dict):
        if not first.get("datetime"):
            return None
        return StructuredSlot(
            datetime=parse_instant(first["datetime"]),
            duration_minutes=_duration(first.get("duration_minutes")),
        )
    if isinstance(first, (str, datetime)):
        return LegacySlot(datetime=parse_instant(first))

    raise ValueError(f"Unrecognised requested_times entry: {first!r}")


def to_interval(shape: SlotShape) -> BookedInterval:
    if isinstance(shape, ScheduledSlot):
        return BookedInterval(start=shape.start, end=shape.end)
    if isinstance(shape, StructuredSlot):
        return BookedInterval(
            start=shape.datetime,
            end=shape.datetime + timedelta(minutes=shape.duration_minutes),
        )
    return BookedInterval(
        start=shape.datetime,
        end=shape.datetime + timedelta(minutes=DEFAULT_DURATION_MINUTES),
    )


def extract_booked_intervals(rows: Iterable[Any]) -> list[BookedInterval]:
    """Collect busy intervals from pending/confirmed booking rows.

    Rows that cannot be parsed are logged and skipped so one bad record
    never blanks out a coach's whole calendar.
    """
    intervals: list[BookedInterval] = []
    for row in rows:
        try:
            shape = parse_slot_shape(row)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Skipping booking {_field(row, 'id')} with unreadable time: {e}")
            continue
        if shape is None:
            logger.warning(f"Skipping booking {_field(row, 'id')} with no scheduled time")
            continue
        intervals.append(to_interval(shape))
    return intervals
