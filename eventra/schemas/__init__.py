"""Public schema exports."""

from .calendar import (
    CalendarEventDetails,
    EventCreationResponse,
    MeetingsResponse,
    TokenExchangeResponse,
)

__all__ = [
    "CalendarEventDetails",
    "EventCreationResponse",
    "MeetingsResponse",
    "TokenExchangeResponse",
]
