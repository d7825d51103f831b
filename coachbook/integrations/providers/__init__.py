from coachbook.integrations.providers.base import CalendarProvider
from coachbook.integrations.providers.google import GoogleCalendarProvider
from coachbook.integrations.providers.native import NullCalendarProvider
from coachbook.integrations.providers.registry import resolve_calendar_provider

__all__ = [
    "CalendarProvider",
    "GoogleCalendarProvider",
    "NullCalendarProvider",
    "resolve_calendar_provider",
]
