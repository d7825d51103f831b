from __future__ import annotations

from datetime import datetime
from typing import Protocol

from coachbook.integrations.google_calendar.models import CalendarEvent
from coachbook.services.results import SyncResult


class CalendarProvider(Protocol):
    """External calendar a coach's confirmed sessions are mirrored to.

    Implementations never raise for provider-side failures; they report
    them as a ``SyncResult`` so callers can carry on with the local
    state change.
    """

    name: str

    async def create_event(self, coach_id: str, event: CalendarEvent) -> SyncResult:
        ...

    async def patch_event_time(
        self,
        coach_id: str,
        event_id: str,
        start: datetime,
        duration_minutes: int,
        timezone: str,
    ) -> SyncResult:
        ...

    async def delete_event(self, coach_id: str, event_id: str) -> SyncResult:
        ...
