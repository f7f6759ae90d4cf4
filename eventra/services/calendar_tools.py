"""
Calendar tool service: the operations exposed to the tool-calling protocol.

Input is validated before any provider call. Every method returns a
JSON-ready dict; failures are reported in the envelope rather than raised.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from eventra.clients import GoogleCalendarClient
from eventra.core.errors import (
    CredentialsRevokedError,
    ProviderError,
    ProviderTimeoutError,
    ValidationError,
)
from eventra.schemas import (
    CalendarEventDetails,
    EventCreationResponse,
    MeetingsResponse,
    TokenExchangeResponse,
)
from eventra.services.credentials import CredentialLifecycleManager

logger = logging.getLogger(__name__)

INVALID_DATE_MESSAGE = "Invalid date format; please provide a valid date string."
AUTH_REQUIRED_ERROR = "Authentication required"
AUTH_REQUIRED_MESSAGE = (
    "Please visit the URL to authenticate and allow access to your Google Calendar."
)
UNKNOWN_TIME = "Unknown time"


def parse_calendar_day(value: Any) -> date:
    """Parse an ISO date or datetime into its UTC calendar day."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(INVALID_DATE_MESSAGE)
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(INVALID_DATE_MESSAGE) from exc
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


def parse_instant(value: Optional[str], label: str) -> datetime:
    """Parse an ISO instant; values without an offset are taken as UTC."""
    message = (
        f"Invalid {label} date/time format; please provide a valid ISO date string."
    )
    if not value or not value.strip():
        raise ValidationError(message)
    try:
        moment = datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationError(message) from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_wire_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def format_meeting(event: Mapping[str, Any]) -> str:
    start = event.get("start") or {}
    when = start.get("dateTime") or start.get("date") or UNKNOWN_TIME
    return f"{event.get('summary', '(No title)')} at {when}"


def _error_kind(exc: ProviderError) -> str:
    return "timeout" if isinstance(exc, ProviderTimeoutError) else "provider"


class CalendarToolService:
    """Read events, create events and accept authorization codes."""

    def __init__(
        self,
        calendar_client: GoogleCalendarClient,
        credential_manager: CredentialLifecycleManager,
        *,
        default_user_id: str,
        max_results: int = 10,
    ) -> None:
        self._calendar = calendar_client
        self._credentials = credential_manager
        self._default_user_id = default_user_id
        self._max_results = max_results

    async def read(self, date_value: Any) -> Dict[str, Any]:
        """List up to ``max_results`` events on the UTC day named by ``date_value``."""
        try:
            day = parse_calendar_day(date_value)
        except ValidationError as exc:
            return MeetingsResponse(error=str(exc), error_kind="validation").to_payload()

        window_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        window_end = window_start + timedelta(days=1)
        try:
            events = await self._calendar.list_events(
                time_min=to_wire_time(window_start),
                time_max=to_wire_time(window_end),
                max_results=self._max_results,
            )
        except ProviderError as exc:
            return MeetingsResponse(error=str(exc), error_kind=_error_kind(exc)).to_payload()

        return MeetingsResponse(meetings=[format_meeting(event) for event in events]).to_payload()

    def _build_event(self, details: Any) -> Dict[str, Any]:
        if not isinstance(details, Mapping):
            raise ValidationError("Event details must be an object")
        try:
            parsed = CalendarEventDetails.model_validate(dict(details))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise ValidationError(f"Invalid event details ({field}): {first['msg']}") from exc

        if not parsed.summary or not parsed.summary.strip():
            raise ValidationError("Event summary is required")
        start = parse_instant(parsed.start_date_time, "start")
        end = parse_instant(parsed.end_date_time, "end")
        if end <= start:
            raise ValidationError("End time must be after the start time.")

        return {
            "summary": parsed.summary,
            "description": parsed.description or "",
            "location": parsed.location or "",
            "start": {"dateTime": to_wire_time(start), "timeZone": "UTC"},
            "end": {"dateTime": to_wire_time(end), "timeZone": "UTC"},
        }

    @staticmethod
    def _authorization_required(auth_url: Optional[str]) -> Dict[str, Any]:
        return EventCreationResponse(
            success=False,
            error=AUTH_REQUIRED_ERROR,
            error_kind="authorization",
            auth_url=auth_url,
            message=AUTH_REQUIRED_MESSAGE,
        ).to_payload()

    async def write(
        self, details: Any, user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an event, or return an authorization URL when no credentials exist."""
        try:
            event = self._build_event(details)
        except ValidationError as exc:
            return EventCreationResponse(
                success=False, error=str(exc), error_kind="validation"
            ).to_payload()

        session = self._credentials.session(user_id or self._default_user_id)
        status = self._credentials.ensure_authorized(session)
        if not status.authorized:
            return self._authorization_required(status.auth_url)

        try:
            credentials = await self._credentials.credentials_for(session)
            created = await self._calendar.insert_event(credentials=credentials, body=event)
        except CredentialsRevokedError:
            return self._authorization_required(
                self._credentials.authorization_url(session.user_id)
            )
        except ProviderError as exc:
            logger.error("Error creating calendar event: %s", exc)
            return EventCreationResponse(
                success=False, error=str(exc), error_kind=_error_kind(exc)
            ).to_payload()

        return EventCreationResponse(
            success=True,
            event_id=created.get("id"),
            html_link=created.get("htmlLink"),
            created=created.get("created"),
        ).to_payload()

    async def set_tokens(self, code: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Exchange an authorization code pasted back by the user."""
        session = self._credentials.session(user_id or self._default_user_id)
        result = await self._credentials.complete_authorization(session, code)
        return TokenExchangeResponse(
            success=result.success,
            message=result.message,
            error=result.error,
            error_kind=result.error_kind,
        ).to_payload()


__all__ = [
    "CalendarToolService",
    "format_meeting",
    "parse_calendar_day",
    "parse_instant",
    "to_wire_time",
]
