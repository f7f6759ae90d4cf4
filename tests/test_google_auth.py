from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from eventra.clients.google_auth import (
    GoogleOAuthClient,
    OAuthStateEncoder,
    OAuthStateError,
    OAuthTokenExchangeError,
    user_email_from_id_token,
)
from eventra.core.config import OAuthSettings
from eventra.core.errors import ProviderTimeoutError


def _segment(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).decode("utf-8").rstrip("=")


def _fake_id_token(claims: dict) -> str:
    return ".".join([_segment({"alg": "RS256", "typ": "JWT"}), _segment(claims), "c2lnbmF0dXJl"])


def _client(google_settings, oauth_settings, handler) -> GoogleOAuthClient:
    return GoogleOAuthClient(
        google_settings, oauth_settings, transport=httpx.MockTransport(handler)
    )


def test_authorization_url_requests_offline_access(google_settings, oauth_settings) -> None:
    client = GoogleOAuthClient(google_settings, oauth_settings)

    url = client.build_authorization_url(state="signed-state")

    query = parse_qs(urlparse(url).query)
    assert url.startswith(GoogleOAuthClient.AUTH_BASE_URL)
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["state"] == ["signed-state"]
    assert query["client_id"] == ["client"]
    assert query["redirect_uri"] == ["https://example.com/oauth2callback"]
    assert "https://www.googleapis.com/auth/calendar.events" in query["scope"][0].split(" ")


@pytest.mark.asyncio
async def test_exchange_authorization_code_returns_token_set(google_settings, oauth_settings) -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(parse_qs(request.content.decode("utf-8")))
        return httpx.Response(
            200,
            json={
                "access_token": "ya29.access",
                "refresh_token": "1//refresh",
                "expires_in": 3599,
                "token_type": "Bearer",
                "scope": "https://www.googleapis.com/auth/calendar",
            },
        )

    client = _client(google_settings, oauth_settings, handler)
    before = datetime.now(timezone.utc)

    token_set = await client.exchange_authorization_code("4/auth-code")

    assert seen[0]["grant_type"] == ["authorization_code"]
    assert seen[0]["code"] == ["4/auth-code"]
    assert token_set.access_token == "ya29.access"
    assert token_set.refresh_token == "1//refresh"
    assert token_set.expires_at >= before + timedelta(seconds=3598)


@pytest.mark.asyncio
async def test_exchange_rejection_raises_provider_error(google_settings, oauth_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Bad Request"}
        )

    client = _client(google_settings, oauth_settings, handler)

    with pytest.raises(OAuthTokenExchangeError) as excinfo:
        await client.exchange_authorization_code("used-code")
    assert "invalid_grant" in str(excinfo.value)


@pytest.mark.asyncio
async def test_non_json_success_body_is_an_exchange_error(google_settings, oauth_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>Service Unavailable</html>")

    client = _client(google_settings, oauth_settings, handler)

    with pytest.raises(OAuthTokenExchangeError, match="non-JSON"):
        await client.refresh_token("refresh-token")


@pytest.mark.asyncio
async def test_refresh_sends_refresh_grant(google_settings, oauth_settings) -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(parse_qs(request.content.decode("utf-8")))
        return httpx.Response(200, json={"access_token": "new-access", "expires_in": 3600})

    client = _client(google_settings, oauth_settings, handler)

    token_set = await client.refresh_token("1//refresh")

    assert seen[0]["grant_type"] == ["refresh_token"]
    assert seen[0]["refresh_token"] == ["1//refresh"]
    assert token_set.access_token == "new-access"
    assert token_set.refresh_token is None


@pytest.mark.asyncio
async def test_transport_faults_are_retried_when_configured(google_settings) -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"access_token": "after-retry"})

    settings = OAuthSettings(OAUTH_MAX_ATTEMPTS=2, OAUTH_RETRY_BACKOFF=0)
    client = _client(google_settings, settings, handler)

    token_set = await client.exchange_authorization_code("code")

    assert len(attempts) == 2
    assert token_set.access_token == "after-retry"


@pytest.mark.asyncio
async def test_single_attempt_by_default(google_settings, oauth_settings) -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(google_settings, oauth_settings, handler)

    with pytest.raises(OAuthTokenExchangeError):
        await client.exchange_authorization_code("code")
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_timeout_is_reported_separately(google_settings, oauth_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(google_settings, oauth_settings, handler)

    with pytest.raises(ProviderTimeoutError):
        await client.exchange_authorization_code("code")


def test_state_encoder_round_trip_and_tampering() -> None:
    encoder = OAuthStateEncoder(secret_key="state-secret")
    token = encoder.encode(
        {"user_id": "user-1", "issued_at": datetime.now(timezone.utc).isoformat()}
    )

    assert encoder.decode(token, max_age_seconds=60)["user_id"] == "user-1"

    with pytest.raises(OAuthStateError):
        OAuthStateEncoder(secret_key="other-secret").decode(token)


def test_state_encoder_rejects_expired_state() -> None:
    encoder = OAuthStateEncoder(secret_key="state-secret")
    issued_at = datetime.now(timezone.utc) - timedelta(hours=1)
    token = encoder.encode({"user_id": "user-1", "issued_at": issued_at.isoformat()})

    with pytest.raises(OAuthStateError):
        encoder.decode(token, max_age_seconds=900)


def test_user_email_is_read_from_id_token() -> None:
    id_token = _fake_id_token({"email": "person@example.com", "sub": "123"})

    assert user_email_from_id_token(id_token) == "person@example.com"
    assert user_email_from_id_token(None) is None
