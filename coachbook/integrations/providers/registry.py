from __future__ import annotations

import logging
from typing import Any

from coachbook.integrations.providers.base import CalendarProvider
from coachbook.integrations.providers.google import GoogleCalendarProvider
from coachbook.integrations.providers.native import NullCalendarProvider

logger = logging.getLogger(__name__)

_NULL_PROVIDER = NullCalendarProvider()


async def resolve_calendar_provider(db: Any, coach_id: str) -> CalendarProvider:
    """Pick the calendar a coach's sessions sync to.

    A coach with a stored Google grant gets the Google provider even when
    the grant is flagged ``needs_reconnect``, so a reconnect done in the
    meantime is picked up by the next call instead of being ignored.
    """
    connection = await db.get_google_connection(coach_id)
    if connection is None or not connection.refresh_token:
        return _NULL_PROVIDER
    if connection.needs_reconnect:
        logger.info(f"Coach {coach_id} calendar grant is flagged for reconnect; trying anyway")
    return GoogleCalendarProvider(connection=connection, db=db)
