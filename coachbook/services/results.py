from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    GUARD = "guard"


class BookingError(Exception):
    """Base class for expected booking-store failures."""


class SlotTakenError(BookingError):
    """The insert or update hit the no-overlap exclusion constraint."""


class DuplicateRescheduleError(BookingError):
    """A pending reschedule already exists for the original booking."""


class StatusChangedError(BookingError):
    """A conditional status update matched no row."""


SLOT_TAKEN_MESSAGE = "That time was just taken. Please pick another slot."


@dataclass
class BookingResult:
    """Outcome of a booking operation.

    Expected failures (bad input, slot conflicts, missing rows, guard
    violations) come back as ``ok=False`` with an ``error`` kind and a
    user-facing ``message``. Calendar sync problems never flip ``ok``;
    they are reported through ``warnings`` and ``needs_reconnect``.
    """

    ok: bool
    booking: Optional[Any] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    needs_reconnect: bool = False

    @classmethod
    def success(cls, booking: Any = None) -> "BookingResult":
        return cls(ok=True, booking=booking)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "BookingResult":
        return cls(ok=False, error=error, message=message)

    @classmethod
    def validation(cls, message: str) -> "BookingResult":
        return cls.failure(ErrorKind.VALIDATION, message)

    @classmethod
    def conflict(cls, message: str = SLOT_TAKEN_MESSAGE) -> "BookingResult":
        return cls.failure(ErrorKind.CONFLICT, message)

    @classmethod
    def not_found(cls, message: str = "Booking not found") -> "BookingResult":
        return cls.failure(ErrorKind.NOT_FOUND, message)

    @classmethod
    def guard(cls, message: str) -> "BookingResult":
        return cls.failure(ErrorKind.GUARD, message)


class SyncStatus(str, Enum):
    OK = "ok"
    RETRYABLE_FAILURE = "retryable_failure"
    NEEDS_RECONNECT = "needs_reconnect"


@dataclass
class SyncResult:
    """Outcome of a best-effort calendar call."""

    status: SyncStatus
    reason: Optional[str] = None
    event_id: Optional[str] = None
    conference_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.OK

    @property
    def needs_reconnect(self) -> bool:
        return self.status == SyncStatus.NEEDS_RECONNECT

    @classmethod
    def success(cls, event_id: Optional[str] = None, conference_url: Optional[str] = None) -> "SyncResult":
        return cls(status=SyncStatus.OK, event_id=event_id, conference_url=conference_url)

    @classmethod
    def retryable(cls, reason: str) -> "SyncResult":
        return cls(status=SyncStatus.RETRYABLE_FAILURE, reason=reason)

    @classmethod
    def reconnect(cls, reason: str) -> "SyncResult":
        return cls(status=SyncStatus.NEEDS_RECONNECT, reason=reason)
