"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from eventra.clients import (
    GoogleCalendarClient,
    GoogleOAuthClient,
    OAuthStateEncoder,
    SQLiteTokenStore,
)
from eventra.core.config import get_settings
from eventra.services import (
    CalendarToolService,
    CredentialLifecycleManager,
    TokenCipherService,
    TokenRefresher,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Google client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.google.client_secret)


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = _settings()
    return GoogleOAuthClient(
        settings.google, settings.oauth, timeout=settings.request_timeout_seconds
    )


@lru_cache()
def get_calendar_client() -> GoogleCalendarClient:
    """Provide the Google Calendar client."""
    settings = _settings()
    return GoogleCalendarClient(
        api_key=settings.google.public_api_key,
        calendar_id=settings.google.calendar_id,
        timeout=settings.request_timeout_seconds,
    )


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.google.client_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_token_store() -> SQLiteTokenStore:
    """Provide the shared credential record store; the schema is applied at startup."""
    settings = _settings()
    return SQLiteTokenStore(
        settings.database_path,
        cipher=get_token_cipher_service(),
        default_ttl=timedelta(seconds=settings.oauth.default_token_ttl_seconds),
        ensure_schema=False,
    )


@lru_cache()
def get_token_refresher() -> TokenRefresher:
    """Provide the token refresh collaborator."""
    settings = _settings()
    return TokenRefresher(
        store=get_token_store(),
        oauth_client=get_google_oauth_client(),
        google_settings=settings.google,
        oauth_settings=settings.oauth,
    )


@lru_cache()
def get_credential_manager() -> CredentialLifecycleManager:
    """Provide the process-wide credential lifecycle manager."""
    settings = _settings()
    return CredentialLifecycleManager(
        store=get_token_store(),
        oauth_client=get_google_oauth_client(),
        refresher=get_token_refresher(),
        state_encoder=get_oauth_state_encoder(),
        oauth_settings=settings.oauth,
    )


@lru_cache()
def get_calendar_tool_service() -> CalendarToolService:
    """Build the calendar tool service exposed over MCP."""
    settings = _settings()
    return CalendarToolService(
        calendar_client=get_calendar_client(),
        credential_manager=get_credential_manager(),
        default_user_id=settings.default_user_id,
    )


__all__ = [
    "get_calendar_client",
    "get_calendar_tool_service",
    "get_credential_manager",
    "get_google_oauth_client",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_refresher",
    "get_token_store",
]
