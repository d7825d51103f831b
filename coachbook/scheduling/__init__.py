"""Pure availability and slot-conflict logic (no I/O)."""

from .intervals import BookedInterval, extract_booked_intervals
from .rules import AvailabilityRule
from .slots import Slot, generate_slots, group_slots_by_date, is_slot_blocked
from .timezones import InvalidTimezoneError, parse_instant, wall_to_instant

__all__ = [
    "AvailabilityRule",
    "BookedInterval",
    "InvalidTimezoneError",
    "Slot",
    "extract_booked_intervals",
    "generate_slots",
    "group_slots_by_date",
    "is_slot_blocked",
    "parse_instant",
    "wall_to_instant",
]
