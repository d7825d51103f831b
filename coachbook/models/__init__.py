from coachbook.models.coach import Coach, GoogleConnection
from coachbook.models.availability import WeeklyAvailability
from coachbook.models.booking import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BookingRequest,
    BookingStatus,
)
from coachbook.models.notification import NotificationEvent

__all__ = [
    "Coach",
    "GoogleConnection",
    "WeeklyAvailability",
    "BookingRequest",
    "BookingStatus",
    "NotificationEvent",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
