"""Timezone helpers for turning coach wall-clock times into instants and back.

Instants are always timezone-aware ``datetime`` objects in UTC. Wall-clock
values are naive ``date``/``time`` pairs that only mean something together
with an IANA zone name.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = timezone.utc

# Offsets change at most once per transition, so a handful of correction
# steps always settles (or starts cycling across a DST gap).
MAX_CONVERGENCE_STEPS = 4

_WEEKDAY_SUNDAY_FIRST = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


class InvalidTimezoneError(ValueError):
    """Raised for unknown or malformed IANA timezone names."""


@dataclass(frozen=True)
class WallClock:
    day: date
    clock: time
    label: str


def resolve_zone(name: str) -> ZoneInfo:
    """Return the ``ZoneInfo`` for ``name`` or fail fast."""
    if not name or not isinstance(name, str):
        raise InvalidTimezoneError(f"Invalid timezone: {name!r}")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(f"Invalid timezone: {name!r}") from e


def parse_wall_time(value: str) -> time:
    """Parse ``HH:MM`` (optionally ``HH:MM:SS``) into a minute-precision time."""
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time format: {value!r}; expected HH:MM")
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ValueError(f"Invalid time format: {value!r}; expected HH:MM") from e
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(hour=hour, minute=minute)


def wall_to_instant(day: date, wall_time: Union[str, time], tz: str) -> datetime:
    """Resolve a wall-clock date and time in ``tz`` to an absolute instant.

    Starts from the wall clock read as if it were UTC, then repeatedly
    measures how far the guess renders from the target in ``tz`` and
    shifts by that error. Ambiguous (fall-back) times settle on the first
    occurrence. Nonexistent (spring-forward) times bounce between the two
    instants either side of the gap; the later one wins, so ``02:30`` in a
    ``02:00 -> 03:00`` gap resolves to ``03:30`` local.
    """
    zone = resolve_zone(tz)
    if isinstance(wall_time, str):
        wall_time = parse_wall_time(wall_time)

    target = datetime.combine(day, wall_time)
    guess = target.replace(tzinfo=UTC)
    visited: list[datetime] = []

    for _ in range(MAX_CONVERGENCE_STEPS):
        observed = guess.astimezone(zone).replace(tzinfo=None)
        error = target - observed
        if not error:
            return guess
        visited.append(guess)
        guess = guess + error
        if guess in visited:
            return max(visited[visited.index(guess):])

    return guess


def instant_to_wall(instant: datetime, tz: str) -> WallClock:
    """Render ``instant`` as wall-clock date, time and label in ``tz``."""
    local = ensure_utc(instant).astimezone(resolve_zone(tz))
    return WallClock(
        day=local.date(),
        clock=local.time().replace(second=0, microsecond=0, tzinfo=None),
        label=local.strftime("%Y-%m-%d %H:%M"),
    )


def local_date(instant: datetime, tz: str) -> date:
    return ensure_utc(instant).astimezone(resolve_zone(tz)).date()


def day_of_week(instant: datetime, tz: str) -> int:
    """Day of week of ``instant`` in ``tz`` with Sunday as 0."""
    return (local_date(instant, tz).weekday() + 1) % 7


def ensure_utc(value: datetime) -> datetime:
    """Coerce a datetime to aware UTC; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_epoch_ms(instant: datetime) -> int:
    return int(ensure_utc(instant).timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def parse_instant(value: Union[str, datetime]) -> datetime:
    """Parse an ISO 8601 timestamp (``Z`` suffix allowed) into aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid datetime: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Invalid datetime: {value!r}") from e
    return ensure_utc(parsed)


# ──────────────────────────────────────────────────────────────────────────────
# Display helpers
# ──────────────────────────────────────────────────────────────────────────────


def _hour_12(local: datetime) -> str:
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def format_time(instant: datetime, tz: str) -> str:
    """``9:00 AM`` style time in ``tz``."""
    return _hour_12(ensure_utc(instant).astimezone(resolve_zone(tz)))


def format_day_label(instant: datetime, tz: str) -> str:
    """``Mon, Mar 11`` style day label in ``tz``."""
    local = ensure_utc(instant).astimezone(resolve_zone(tz))
    weekday = _WEEKDAY_SUNDAY_FIRST[(local.weekday() + 1) % 7]
    return f"{weekday}, {local.strftime('%b')} {local.day}"


def format_full_datetime(instant: datetime, tz: str) -> str:
    """``Monday, March 11, 2024 at 9:00 AM`` style timestamp for e-mails."""
    local = ensure_utc(instant).astimezone(resolve_zone(tz))
    return f"{local.strftime('%A, %B')} {local.day}, {local.year} at {_hour_12(local)}"
