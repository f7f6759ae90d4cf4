"""Google Calendar client wrapper for reading and creating events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, TypeVar

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from eventra.core.errors import ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GoogleCalendarClient:
    """
    Thin async wrapper over the Calendar v3 API.

    Reads use the public API key and are never gated on OAuth; writes need the
    caller's OAuth credentials.
    """

    def __init__(self, *, api_key: str, calendar_id: str, timeout: float = 10.0) -> None:
        self._api_key = api_key
        self._calendar_id = calendar_id
        self._timeout = timeout

    async def _run(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Calendar %s timed out after %.1fs", operation, self._timeout)
            raise ProviderTimeoutError(
                f"Calendar {operation} timed out after {self._timeout:g} seconds."
            ) from exc
        except HttpError as exc:
            logger.warning("Calendar %s rejected: %s", operation, exc)
            raise ProviderError(_http_error_message(exc)) from exc

    async def list_events(
        self, *, time_min: str, time_max: str, max_results: int = 10
    ) -> List[Dict[str, Any]]:
        """Return single events in ``[time_min, time_max)`` ordered by start time."""

        def _execute_list() -> List[Dict[str, Any]]:
            service = build(
                "calendar", "v3", developerKey=self._api_key, cache_discovery=False
            )
            response = (
                service.events()
                .list(
                    calendarId=self._calendar_id,
                    timeMin=time_min,
                    timeMax=time_max,
                    maxResults=max_results,
                    singleEvents=True,
                    orderBy="startTime",
                )
                .execute()
            )
            return response.get("items", [])

        return await self._run("read", _execute_list)

    async def insert_event(
        self, *, credentials: Credentials, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Create an event and return the API resource."""

        def _execute_insert() -> Dict[str, Any]:
            service = build(
                "calendar", "v3", credentials=credentials, cache_discovery=False
            )
            return (
                service.events()
                .insert(calendarId=self._calendar_id, body=body)
                .execute()
            )

        return await self._run("write", _execute_insert)


def _http_error_message(exc: HttpError) -> str:
    reason = getattr(exc, "reason", None)
    if reason:
        return str(reason)
    return str(exc)


__all__ = ["GoogleCalendarClient"]
