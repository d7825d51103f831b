from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import aiohttp

from coachbook.core import config
from coachbook.integrations.google_calendar.models import (
    CalendarEvent,
    extract_conference_url,
    time_patch,
)
from coachbook.integrations.google_calendar.oauth import (
    GoogleAuthError,
    GoogleCalendarOAuth,
    google_oauth,
)
from coachbook.services.results import SyncResult

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

# Refresh a little before Google would reject the token.
TOKEN_EXPIRY_MARGIN = timedelta(seconds=60)

_SCOPE_ERROR_REASONS = {"insufficientPermissions", "forbidden", "accessNotConfigured"}


def classify_api_error(status: int, payload: Any) -> SyncResult:
    """Turn a Google API error response into a sync outcome.

    401 means the token is no longer accepted; 403 with a permission or
    scope complaint means the grant lacks calendar access. Both need the
    coach to reconnect. Everything else is worth retrying later.
    """
    error = payload.get("error") if isinstance(payload, dict) else None
    message = ""
    reasons: set[str] = set()
    api_status = None
    if isinstance(error, dict):
        message = str(error.get("message") or "")
        api_status = error.get("status")
        reasons = {str(e.get("reason")) for e in error.get("errors") or [] if isinstance(e, dict)}

    if status == 401:
        return SyncResult.reconnect("auth_expired")

    lowered = message.lower()
    scope_problem = (
        api_status == "PERMISSION_DENIED"
        or bool(reasons & _SCOPE_ERROR_REASONS)
        or any(word in lowered for word in ("insufficient", "scope", "permission"))
    )
    if status == 403 and scope_problem:
        return SyncResult.reconnect("insufficient_scopes")

    return SyncResult.retryable(message or f"http_{status}")


class GoogleCalendarProvider:
    """Google Calendar v3 over REST, authenticated with the coach's grant."""

    name = "google"

    def __init__(
        self,
        connection: Any,
        db: Any,
        oauth: Optional[GoogleCalendarOAuth] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.connection = connection
        self.db = db
        self.oauth = oauth or google_oauth
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or config.CALENDAR_TIMEOUT_SECONDS
        )

    # ==================== TOKENS ====================

    def _token_is_fresh(self) -> bool:
        expiry = self.connection.token_expiry
        if not self.connection.access_token or expiry is None:
            return False
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return expiry > datetime.now(timezone.utc) + TOKEN_EXPIRY_MARGIN

    async def _access_token(self) -> str:
        if self._token_is_fresh():
            return self.connection.access_token

        refresh_token = self.oauth.decrypt_token(self.connection.refresh_token)
        access_token, expires_in = await self.oauth.refresh_access_token(refresh_token)
        expiry = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

        self.connection.access_token = access_token
        self.connection.token_expiry = expiry
        await self.db.update_google_connection(
            str(self.connection.coach_id),
            {"access_token": access_token, "token_expiry": expiry},
        )
        return access_token

    # ==================== REQUESTS ====================

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> tuple[int, Any]:
        token = await self._access_token()
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            ) as resp:
                if resp.status == 204:
                    return resp.status, None
                try:
                    payload = await resp.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    payload = await resp.text()
                return resp.status, payload

    async def _call(
        self,
        operation: str,
        coach_id: str,
        done_statuses: tuple = (),
        **kwargs,
    ) -> tuple[Optional[SyncResult], Any]:
        """Run a request, mapping transport and auth failures to a ``SyncResult``.

        Returns ``(None, payload)`` on a 2xx response or one of
        ``done_statuses``, and ``(failure, None)`` otherwise.
        """
        try:
            status, payload = await self._request(**kwargs)
        except GoogleAuthError as e:
            logger.error(f"[Google Calendar] {operation} auth failure for coach {coach_id}: {e}")
            if e.revoked:
                return SyncResult.reconnect("auth_expired"), None
            return SyncResult.retryable(str(e)), None
        except asyncio.TimeoutError:
            logger.warning(f"[Google Calendar] {operation} timed out for coach {coach_id}")
            return SyncResult.retryable("timeout"), None
        except aiohttp.ClientError as e:
            logger.warning(f"[Google Calendar] {operation} transport error for coach {coach_id}: {e}")
            return SyncResult.retryable(str(e)), None

        if 200 <= status < 300 or status in done_statuses:
            return None, payload

        outcome = classify_api_error(status, payload)
        logger.error(
            f"[Google Calendar] {operation} failed for coach {coach_id}: "
            f"status={status} outcome={outcome.status.value} reason={outcome.reason}"
        )
        return outcome, None

    # ==================== CALENDAR PROVIDER ====================

    async def create_event(self, coach_id: str, event: CalendarEvent) -> SyncResult:
        failure, payload = await self._call(
            "create",
            coach_id,
            method="POST",
            url=EVENTS_URL,
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
            json=event.to_google_event(),
        )
        if failure:
            return failure

        payload = payload or {}
        event_id = payload.get("id")
        conference_url = extract_conference_url(payload)
        if not conference_url:
            logger.warning(f"[Google Calendar] No Meet URL in response for event {event_id}")
        logger.info(f"[Google Calendar] Event created: eventId={event_id} meetUrl={conference_url}")
        return SyncResult.success(event_id=event_id, conference_url=conference_url)

    async def patch_event_time(
        self,
        coach_id: str,
        event_id: str,
        start: datetime,
        duration_minutes: int,
        timezone: str,
    ) -> SyncResult:
        failure, payload = await self._call(
            "patch",
            coach_id,
            method="PATCH",
            url=f"{EVENTS_URL}/{event_id}",
            params={"sendUpdates": "all"},
            json=time_patch(start, duration_minutes, timezone),
        )
        if failure:
            return failure
        logger.info(f"[Google Calendar] Event rescheduled: {event_id}")
        return SyncResult.success(
            event_id=event_id,
            conference_url=extract_conference_url(payload or {}),
        )

    async def delete_event(self, coach_id: str, event_id: str) -> SyncResult:
        failure, _ = await self._call(
            "delete",
            coach_id,
            method="DELETE",
            url=f"{EVENTS_URL}/{event_id}",
            params={"sendUpdates": "all"},
            # Already gone counts as deleted
            done_statuses=(404, 410),
        )
        if failure:
            return failure
        logger.info(f"[Google Calendar] Event deleted: {event_id}")
        return SyncResult.success(event_id=event_id)
