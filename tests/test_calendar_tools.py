from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import timedelta

import pytest

from eventra.clients.google_auth import GoogleOAuthClient, OAuthStateEncoder
from eventra.clients.token_store import SQLiteTokenStore
from eventra.core.errors import ProviderError, ProviderTimeoutError
from eventra.models.oauth import TokenSet, to_epoch_millis
from eventra.services.calendar_tools import (
    AUTH_REQUIRED_ERROR,
    INVALID_DATE_MESSAGE,
    CalendarToolService,
    format_meeting,
    parse_calendar_day,
)
from eventra.services.credentials import AUTH_SUCCESS_MESSAGE, CredentialLifecycleManager
from eventra.services.google_tokens import TokenRefresher


class FakeCalendarClient:
    def __init__(self, *, events=None, error: Exception | None = None) -> None:
        self.events = events or []
        self.error = error
        self.list_calls: list[dict] = []
        self.insert_calls: list[dict] = []

    async def list_events(self, *, time_min: str, time_max: str, max_results: int = 10):
        self.list_calls.append(
            {"time_min": time_min, "time_max": time_max, "max_results": max_results}
        )
        if self.error:
            raise self.error
        return self.events

    async def insert_event(self, *, credentials, body):
        self.insert_calls.append({"credentials": credentials, "body": body})
        if self.error:
            raise self.error
        return {
            "id": "evt-1",
            "htmlLink": "https://calendar.google.com/event?eid=evt-1",
            "created": "2025-09-03T12:00:00.000Z",
        }


class CodeExchangingOAuthClient(GoogleOAuthClient):
    """Real URL building, canned token exchange."""

    def __init__(self, google_settings, oauth_settings, clock) -> None:
        super().__init__(google_settings, oauth_settings)
        self._clock = clock
        self.codes: list[str] = []

    async def exchange_authorization_code(self, code: str) -> TokenSet:
        self.codes.append(code)
        return TokenSet(
            access_token="access-from-code",
            refresh_token="refresh-from-code",
            expiry_date=to_epoch_millis(self._clock() + timedelta(hours=1)),
        )


@pytest.fixture
def store(tmp_path, clock) -> SQLiteTokenStore:
    return SQLiteTokenStore(str(tmp_path / "tokens.db"), clock=clock)


@pytest.fixture
def oauth_client(google_settings, oauth_settings, clock) -> CodeExchangingOAuthClient:
    return CodeExchangingOAuthClient(google_settings, oauth_settings, clock)


def _service(store, oauth_client, calendar, google_settings, oauth_settings, clock) -> CalendarToolService:
    refresher = TokenRefresher(
        store=store,
        oauth_client=oauth_client,
        google_settings=google_settings,
        oauth_settings=oauth_settings,
        clock=clock,
    )
    manager = CredentialLifecycleManager(
        store=store,
        oauth_client=oauth_client,
        refresher=refresher,
        state_encoder=OAuthStateEncoder(secret_key="state-secret"),
        oauth_settings=oauth_settings,
        clock=clock,
    )
    return CalendarToolService(calendar, manager, default_user_id="default_user")


EVENT_DETAILS = {
    "summary": "Team Meeting",
    "description": "Weekly team sync",
    "startDateTime": "2025-09-03T14:00:00Z",
    "endDateTime": "2025-09-03T15:00:00Z",
    "location": "Conference Room A",
}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2025-09-03", "2025-09-03"),
        ("2025-09-03T23:30:00-02:00", "2025-09-04"),
        ("2025-09-03T10:00:00", "2025-09-03"),
    ],
)
def test_parse_calendar_day_uses_utc_day(value: str, expected: str) -> None:
    assert parse_calendar_day(value).isoformat() == expected


def test_format_meeting_falls_back_for_missing_fields() -> None:
    assert format_meeting({"summary": "Standup", "start": {"dateTime": "2025-09-03T09:00:00Z"}}) == (
        "Standup at 2025-09-03T09:00:00Z"
    )
    assert format_meeting({"summary": "Holiday", "start": {"date": "2025-09-03"}}) == (
        "Holiday at 2025-09-03"
    )
    assert format_meeting({}) == "(No title) at Unknown time"


@pytest.mark.asyncio
async def test_read_queries_one_utc_day(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    calendar = FakeCalendarClient(
        events=[{"summary": "Standup", "start": {"dateTime": "2025-09-03T09:00:00Z"}}]
    )
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.read("2025-09-03")

    assert result == {"meetings": ["Standup at 2025-09-03T09:00:00Z"]}
    assert calendar.list_calls == [
        {
            "time_min": "2025-09-03T00:00:00.000Z",
            "time_max": "2025-09-04T00:00:00.000Z",
            "max_results": 10,
        }
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["2025-13-40", "not-a-date", ""])
async def test_read_rejects_invalid_date_without_calling_provider(
    store, oauth_client, google_settings, oauth_settings, clock, value
) -> None:
    calendar = FakeCalendarClient()
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.read(value)

    assert result == {"error": INVALID_DATE_MESSAGE, "errorKind": "validation"}
    assert calendar.list_calls == []


@pytest.mark.asyncio
async def test_read_reports_provider_failures(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    calendar = FakeCalendarClient(error=ProviderTimeoutError("Calendar read timed out after 10 seconds."))
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.read("2025-09-03")

    assert result["errorKind"] == "timeout"
    assert "meetings" not in result


@pytest.mark.asyncio
async def test_write_rejects_end_not_after_start(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    calendar = FakeCalendarClient()
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.write({**EVENT_DETAILS, "endDateTime": EVENT_DETAILS["startDateTime"]})

    assert result == {
        "success": False,
        "error": "End time must be after the start time.",
        "errorKind": "validation",
    }
    assert calendar.insert_calls == []
    assert oauth_client.codes == []


@pytest.mark.asyncio
async def test_write_rejects_unparseable_times(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    calendar = FakeCalendarClient()
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.write({**EVENT_DETAILS, "startDateTime": "tomorrow afternoon"})

    assert result["success"] is False
    assert result["errorKind"] == "validation"
    assert calendar.insert_calls == []


@pytest.mark.asyncio
async def test_unauthorized_write_returns_consent_url(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    calendar = FakeCalendarClient()
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.write(EVENT_DETAILS)

    assert result["success"] is False
    assert result["error"] == AUTH_REQUIRED_ERROR
    assert result["errorKind"] == "authorization"
    assert "access_type=offline" in result["authUrl"]
    assert "prompt=consent" in result["authUrl"]
    assert calendar.insert_calls == []


@pytest.mark.asyncio
async def test_set_tokens_then_write_creates_event(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    calendar = FakeCalendarClient()
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    exchange = await service.set_tokens("4/auth-code")
    assert exchange == {"success": True, "message": AUTH_SUCCESS_MESSAGE}
    assert store.has_valid_tokens("default_user")

    result = await service.write(EVENT_DETAILS)

    assert result == {
        "success": True,
        "eventId": "evt-1",
        "htmlLink": "https://calendar.google.com/event?eid=evt-1",
        "created": "2025-09-03T12:00:00.000Z",
    }
    body = calendar.insert_calls[0]["body"]
    assert body["start"] == {"dateTime": "2025-09-03T14:00:00.000Z", "timeZone": "UTC"}
    assert body["end"] == {"dateTime": "2025-09-03T15:00:00.000Z", "timeZone": "UTC"}
    assert calendar.insert_calls[0]["credentials"].token == "access-from-code"


@pytest.mark.asyncio
async def test_write_reports_provider_rejection(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    store.save(
        "default_user",
        TokenSet(access_token="stored", expiry_date=to_epoch_millis(clock() + timedelta(hours=1))),
    )
    calendar = FakeCalendarClient(error=ProviderError("Forbidden"))
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.write(EVENT_DETAILS)

    assert result == {"success": False, "error": "Forbidden", "errorKind": "provider"}


@pytest.mark.asyncio
async def test_set_tokens_requires_code(
    store, oauth_client, google_settings, oauth_settings, clock
) -> None:
    service = _service(
        store, oauth_client, FakeCalendarClient(), google_settings, oauth_settings, clock
    )

    result = await service.set_tokens("")

    assert result["success"] is False
    assert result["errorKind"] == "validation"
    assert oauth_client.codes == []


class RenewingOAuthClient(CodeExchangingOAuthClient):
    async def refresh_token(self, refresh_token: str) -> TokenSet:
        return TokenSet(
            access_token="renewed",
            expiry_date=to_epoch_millis(self._clock() + timedelta(hours=1)),
        )


@pytest.mark.asyncio
async def test_write_after_external_delete_requires_authorization(
    store, google_settings, oauth_settings, clock
) -> None:
    store.save(
        "default_user",
        TokenSet(
            access_token="stored",
            refresh_token="r",
            expiry_date=to_epoch_millis(clock() + timedelta(hours=1)),
        ),
    )
    calendar = FakeCalendarClient()
    oauth_client = RenewingOAuthClient(google_settings, oauth_settings, clock)
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)
    assert (await service.write(EVENT_DETAILS))["success"] is True

    store.delete("default_user")
    clock.advance(timedelta(minutes=58))
    result = await service.write(EVENT_DETAILS)

    assert result["success"] is False
    assert result["error"] == AUTH_REQUIRED_ERROR
    assert result["errorKind"] == "authorization"
    assert "access_type=offline" in result["authUrl"]
    assert len(calendar.insert_calls) == 1
    assert store.load("default_user").found is False


@pytest.mark.asyncio
@pytest.mark.parametrize("details", [None, "Team Meeting at 2pm", ["summary"]])
async def test_write_rejects_non_object_details(
    store, oauth_client, google_settings, oauth_settings, clock, details
) -> None:
    calendar = FakeCalendarClient()
    service = _service(store, oauth_client, calendar, google_settings, oauth_settings, clock)

    result = await service.write(details)

    assert result == {
        "success": False,
        "error": "Event details must be an object",
        "errorKind": "validation",
    }
    assert calendar.insert_calls == []
