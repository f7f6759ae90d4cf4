"""Pytest configuration shared across the suite."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from eventra.core.config import GoogleSettings, OAuthSettings


class FrozenClock:
    """Callable clock that tests can move forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 9, 3, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def google_settings() -> GoogleSettings:
    return GoogleSettings(
        GOOGLE_CLIENT_ID="client",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_REDIRECT_URL="https://example.com/oauth2callback",
        GOOGLE_PUBLIC_API_KEY="api-key",
    )


@pytest.fixture
def oauth_settings() -> OAuthSettings:
    return OAuthSettings()
