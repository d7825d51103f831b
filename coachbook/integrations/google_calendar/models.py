"""Calendar event data models"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional


@dataclass
class CalendarEvent:
    """Represents a confirmed session for the coach's calendar"""

    summary: str                    # "Coaching session - Jane Smith"
    description: str                # Student details, booking id
    start_time: datetime            # Aware UTC instant
    duration_minutes: int
    timezone: str                   # Coach zone, shown by Google
    booking_id: str                 # Link back to our DB
    attendees: List[str] = field(default_factory=list)
    request_conference: bool = True

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def to_google_event(self) -> dict:
        """Convert to Google Calendar API event format"""
        body = {
            "summary": self.summary,
            "description": self.description,
            "start": {
                "dateTime": self.start_time.isoformat(),
                "timeZone": self.timezone,
            },
            "end": {
                "dateTime": self.end_time.isoformat(),
                "timeZone": self.timezone,
            },
            "attendees": [{"email": email} for email in self.attendees if email],
        }
        if self.request_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"coachbook-{self.booking_id}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return body


def time_patch(start_time: datetime, duration_minutes: int, timezone: str) -> dict:
    """Body for moving an existing event to a new time."""
    end_time = start_time + timedelta(minutes=duration_minutes)
    return {
        "start": {"dateTime": start_time.isoformat(), "timeZone": timezone},
        "end": {"dateTime": end_time.isoformat(), "timeZone": timezone},
    }


def extract_conference_url(event: dict) -> Optional[str]:
    """Meet link from an event resource: video entry point, else hangoutLink."""
    entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return event.get("hangoutLink")
