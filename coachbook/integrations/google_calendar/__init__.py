"""Google Calendar Integration"""

from .oauth import GoogleAuthError, GoogleCalendarOAuth, google_oauth
from .models import CalendarEvent

__all__ = ["GoogleAuthError", "GoogleCalendarOAuth", "google_oauth", "CalendarEvent"]
