"""
Credential lifecycle management.

A ``CredentialSession`` is the in-process view of one user's credentials. The
manager loads sessions from the token store, decides whether a user is
authorized, completes authorization-code exchanges and invalidates records.

Per user the lifecycle is::

    Unauthorized --complete_authorization--> Authorized
    Authorized   --invalidate / cleanup-----> Unauthorized

An authorized user stays authorized across access-token expiry as long as a
refresh token exists; renewal happens in ``credentials_for``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional
from uuid import uuid4

from google.oauth2.credentials import Credentials

from eventra.clients import GoogleOAuthClient, OAuthStateEncoder, SQLiteTokenStore
from eventra.clients.google_auth import user_email_from_id_token
from eventra.core.config import OAuthSettings
from eventra.core.errors import (
    CredentialsRevokedError,
    PersistenceError,
    ProviderError,
    ProviderTimeoutError,
)
from eventra.models.oauth import LookupResult, TokenSet
from eventra.services.google_tokens import TokenRefresher

logger = logging.getLogger(__name__)

AUTH_SUCCESS_MESSAGE = "Authentication successful! You can now create calendar events."


@dataclass(slots=True)
class CredentialSession:
    """Credentials currently held in memory for one user."""

    user_id: str
    token_set: Optional[TokenSet] = None
    user_email: Optional[str] = None

    @property
    def has_access_token(self) -> bool:
        return bool(self.token_set and self.token_set.access_token)


@dataclass(frozen=True, slots=True)
class AuthorizationStatus:
    authorized: bool
    auth_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AuthorizationResult:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class CredentialLifecycleManager:
    """Bridge between the identity provider and the credential store."""

    def __init__(
        self,
        store: SQLiteTokenStore,
        oauth_client: GoogleOAuthClient,
        refresher: TokenRefresher,
        state_encoder: OAuthStateEncoder,
        oauth_settings: OAuthSettings,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._refresher = refresher
        self._state_encoder = state_encoder
        self._oauth_settings = oauth_settings
        self._clock = clock
        self._sessions: Dict[str, CredentialSession] = {}

    def session(self, user_id: str) -> CredentialSession:
        """Return the user's session, loading stored credentials on first use."""
        cached = self._sessions.get(user_id)
        if cached is not None:
            return cached

        loaded = self._store.load(user_id)
        session = CredentialSession(user_id=user_id)
        if loaded.faulted:
            # Not cached, so the next call retries the store.
            logger.warning("Token store unavailable while loading user %s", user_id)
            return session
        if loaded.found:
            session.token_set = loaded.value
            email = self._store.get_user_email(user_id)
            session.user_email = email.value if email.found else None
            logger.info("Loaded saved tokens for user %s from database", user_id)
        self._sessions[user_id] = session
        return session

    def authorization_url(self, user_id: str) -> str:
        state = self._state_encoder.encode(
            {
                "user_id": user_id,
                "nonce": uuid4().hex,
                "issued_at": self._clock().isoformat(),
            }
        )
        return self._oauth.build_authorization_url(state=state)

    def user_id_from_state(self, state: str) -> Optional[str]:
        """Return the user named in a signed state value; raises ``OAuthStateError``."""
        payload = self._state_encoder.decode(
            state, max_age_seconds=self._oauth_settings.state_ttl_seconds
        )
        return payload.get("user_id")

    def ensure_authorized(self, session: CredentialSession) -> AuthorizationStatus:
        """
        Gate on the presence of an access token, not on its freshness.

        An expired token that can be refreshed must still be attempted.
        """
        if session.has_access_token:
            return AuthorizationStatus(authorized=True)
        return AuthorizationStatus(
            authorized=False, auth_url=self.authorization_url(session.user_id)
        )

    async def complete_authorization(
        self, session: CredentialSession, code: str
    ) -> AuthorizationResult:
        """Exchange ``code`` and persist the tokens; failures leave state untouched."""
        if not code or not code.strip():
            return AuthorizationResult(
                success=False,
                error="Authorization code is required",
                error_kind="validation",
            )

        try:
            token_set = await self._oauth.exchange_authorization_code(code.strip())
        except ProviderError as exc:
            logger.error("Error getting tokens for user %s: %s", session.user_id, exc)
            kind = "timeout" if isinstance(exc, ProviderTimeoutError) else "provider"
            return AuthorizationResult(success=False, error=str(exc), error_kind=kind)

        user_email = user_email_from_id_token(token_set.id_token)
        try:
            self._store.save(session.user_id, token_set, user_email=user_email)
        except PersistenceError as exc:
            return AuthorizationResult(
                success=False, error=str(exc), error_kind="persistence"
            )

        stored = self._store.load(session.user_id)
        session.token_set = stored.value if stored.found else token_set
        session.user_email = user_email or session.user_email
        self._sessions[session.user_id] = session
        return AuthorizationResult(success=True, message=AUTH_SUCCESS_MESSAGE)

    async def credentials_for(self, session: CredentialSession) -> Credentials:
        """
        Refresh the session's tokens when needed and build API credentials.

        Raises ``CredentialsRevokedError`` after forgetting the session when the
        stored record was deleted, e.g. by another process.
        """
        try:
            token_set = await self._refresher.refresh_if_needed(
                user_id=session.user_id, token_set=session.token_set
            )
        except CredentialsRevokedError:
            logger.info(
                "Credentials for user %s were revoked; forgetting session", session.user_id
            )
            session.token_set = None
            session.user_email = None
            self._sessions.pop(session.user_id, None)
            raise
        session.token_set = token_set
        return self._refresher.build_credentials(token_set)

    def invalidate(self, user_id: str) -> LookupResult[bool]:
        """Delete the stored record and forget the in-memory session."""
        result = self._store.delete(user_id)
        if not result.faulted:
            self._sessions.pop(user_id, None)
        return result

    def cleanup(self) -> int:
        """Reap expired, unrefreshable records and the sessions that held them."""
        removed = self._store.cleanup_expired_tokens()
        if removed:
            now = self._clock()
            for user_id, session in list(self._sessions.items()):
                token_set = session.token_set
                if token_set and not token_set.refresh_token and token_set.is_expired(now):
                    del self._sessions[user_id]
        return removed


__all__ = [
    "AuthorizationResult",
    "AuthorizationStatus",
    "CredentialLifecycleManager",
    "CredentialSession",
]
