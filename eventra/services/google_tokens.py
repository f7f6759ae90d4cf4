"""
Explicit refresh policy for stored Google OAuth tokens.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from google.oauth2.credentials import Credentials

from eventra.clients import GoogleOAuthClient, SQLiteTokenStore
from eventra.core.config import GoogleSettings, OAuthSettings
from eventra.core.errors import CredentialsRevokedError, PersistenceError
from eventra.models.oauth import TokenSet

logger = logging.getLogger(__name__)


class TokenRefresher:
    """
    Decides when a token set needs renewal and performs it.

    A refresh is needed when the access token expires within the refresh
    window and a refresh token is available. A stale token without a refresh
    token is handed back unchanged so the provider call is still attempted.
    Exactly one refresh request is made per call; retries of transport
    faults are governed by the OAuth client's retry settings. Renewals only
    update an existing record; if the record was deleted in the meantime
    ``CredentialsRevokedError`` is raised instead.
    """

    def __init__(
        self,
        store: SQLiteTokenStore,
        oauth_client: GoogleOAuthClient,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._google = google_settings
        self._oauth_settings = oauth_settings
        self._window = timedelta(seconds=oauth_settings.refresh_window_seconds)
        self._clock = clock

    def needs_refresh(self, token_set: TokenSet) -> bool:
        expires_at = token_set.expires_at
        if expires_at is None or not token_set.refresh_token:
            return False
        return expires_at <= self._clock() + self._window

    async def refresh_if_needed(self, *, user_id: str, token_set: TokenSet) -> TokenSet:
        """Return ``token_set`` or a freshly refreshed and persisted replacement."""
        if not self.needs_refresh(token_set):
            if token_set.is_expired(self._clock()):
                logger.info(
                    "Token for user %s is expired and has no refresh token", user_id
                )
            return token_set

        logger.info("Refreshing access token for user %s", user_id)
        refreshed = await self._oauth.refresh_token(token_set.refresh_token)
        merged = refreshed.model_copy(
            update={
                "refresh_token": refreshed.refresh_token or token_set.refresh_token,
                "scope": refreshed.scope or token_set.scope,
                "id_token": refreshed.id_token or token_set.id_token,
            }
        )
        try:
            updated = self._store.update_tokens(user_id, merged)
        except PersistenceError:
            logger.warning(
                "Refreshed token for user %s could not be persisted; using it in memory",
                user_id,
            )
            return merged
        if not updated:
            raise CredentialsRevokedError(
                f"Stored credentials for user {user_id} were revoked."
            )
        return merged

    def build_credentials(self, token_set: TokenSet) -> Credentials:
        """Convert a token set into google-auth credentials for API clients."""
        expires_at = token_set.expires_at
        return Credentials(
            token=token_set.access_token,
            refresh_token=token_set.refresh_token,
            token_uri=GoogleOAuthClient.TOKEN_URL,
            client_id=self._google.client_id,
            client_secret=self._google.client_secret,
            scopes=list(self._oauth_settings.scopes),
            # google-auth compares expiry against naive UTC.
            expiry=expires_at.replace(tzinfo=None) if expires_at else None,
        )


__all__ = ["TokenRefresher"]
