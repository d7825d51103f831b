from __future__ import annotations

from datetime import datetime

from coachbook.integrations.google_calendar.models import CalendarEvent
from coachbook.services.results import SyncResult


class NullCalendarProvider:
    """Used when the coach has no calendar connected: nothing to sync."""

    name = "none"

    async def create_event(self, coach_id: str, event: CalendarEvent) -> SyncResult:
        return SyncResult.success()

    async def patch_event_time(
        self,
        coach_id: str,
        event_id: str,
        start: datetime,
        duration_minutes: int,
        timezone: str,
    ) -> SyncResult:
        return SyncResult.success()

    async def delete_event(self, coach_id: str, event_id: str) -> SyncResult:
        return SyncResult.success()
