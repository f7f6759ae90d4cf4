"""Expose constructed client wrappers."""

from .google_auth import GoogleOAuthClient, OAuthStateEncoder
from .google_calendar import GoogleCalendarClient
from .token_store import SQLiteTokenStore

__all__ = [
    "GoogleCalendarClient",
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "SQLiteTokenStore",
]
