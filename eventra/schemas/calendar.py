"""
Pydantic models for calendar tool payloads.

Field aliases follow the camelCase names used on the tool-calling surface.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ToolModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        """Serialize with wire names, leaving out fields that were not set."""
        return self.model_dump(by_alias=True, exclude_none=True)


class CalendarEventDetails(_ToolModel):
    """Raw event details supplied by the caller; validated by the tool service."""

    summary: Optional[str] = Field(None, description="Event title.")
    description: Optional[str] = None
    start_date_time: Optional[str] = Field(None, alias="startDateTime")
    end_date_time: Optional[str] = Field(None, alias="endDateTime")
    location: Optional[str] = None


class MeetingsResponse(_ToolModel):
    """Result of reading one day of the calendar."""

    meetings: Optional[List[str]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, alias="errorKind")


class EventCreationResponse(_ToolModel):
    """Result of creating an event, including the authorization branch."""

    success: bool
    event_id: Optional[str] = Field(None, alias="eventId")
    html_link: Optional[str] = Field(None, alias="htmlLink")
    created: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, alias="errorKind")
    auth_url: Optional[str] = Field(None, alias="authUrl")
    message: Optional[str] = None


class TokenExchangeResponse(_ToolModel):
    """Result of exchanging an authorization code."""

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, alias="errorKind")


__all__ = [
    "CalendarEventDetails",
    "EventCreationResponse",
    "MeetingsResponse",
    "TokenExchangeResponse",
]
