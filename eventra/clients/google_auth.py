"""
Google OAuth utilities.

These helpers build the consent URL, exchange authorization codes and refresh
access tokens against Google's token endpoint.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from google.auth import jwt

from eventra.core.config import GoogleSettings, OAuthSettings
from eventra.core.errors import ProviderError, ProviderTimeoutError, ValidationError
from eventra.models.oauth import TokenSet, to_epoch_millis
from eventra.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)


class OAuthStateError(ValidationError):
    """Raised when an OAuth state value is malformed, forged or expired."""


class OAuthTokenExchangeError(ProviderError):
    """Raised when the token endpoint returns an error."""


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str, *, max_age_seconds: Optional[int] = None) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise OAuthStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise OAuthStateError("Invalid OAuth state signature.")
        payload = json.loads(serialized)

        if max_age_seconds is not None:
            issued_at_raw = payload.get("issued_at")
            if not issued_at_raw:
                raise OAuthStateError("Missing issued_at in state token.")
            issued_at = datetime.fromisoformat(issued_at_raw)
            if issued_at.tzinfo is None:
                issued_at = issued_at.replace(tzinfo=timezone.utc)
            if datetime.now(timezone.utc) - issued_at > timedelta(seconds=max_age_seconds):
                raise OAuthStateError("OAuth state token has expired.")
        return payload


def user_email_from_id_token(id_token: Optional[str]) -> Optional[str]:
    """
    Read the ``email`` claim of an ID token fresh from the token endpoint.

    The token arrived over TLS directly from Google, so the signature is not
    re-verified here; the email is descriptive only and never used for lookup.
    """
    if not id_token:
        return None
    try:
        claims = jwt.decode(id_token, verify=False)
    except ValueError as exc:
        logger.warning("Could not decode ID token: %s", exc)
        return None
    return claims.get("email")


class GoogleOAuthClient:
    """Build Google authorization URLs and exchange authorization codes."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._timeout = timeout
        self._transport = transport
        self._retry = RetryConfig(
            attempts=oauth_settings.max_attempts,
            backoff_seconds=oauth_settings.retry_backoff_seconds,
        )

    def build_authorization_url(self, state: str | None = None) -> str:
        """Construct the consent URL for offline access with forced consent."""
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": str(self._google.redirect_url),
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def _post_token_endpoint(self, payload: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await request_with_retry(
                    client.post, self.TOKEN_URL, data=payload, retry_config=self._retry
                )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError("Token endpoint request timed out.") from exc
        except httpx.TransportError as exc:
            raise OAuthTokenExchangeError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise OAuthTokenExchangeError(_describe_error(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise OAuthTokenExchangeError("Token endpoint returned a non-JSON response.") from exc
        if not isinstance(payload, dict):
            raise OAuthTokenExchangeError("Token endpoint returned an unexpected payload.")
        return payload

    @staticmethod
    def _token_set_from_payload(token_payload: Dict[str, Any]) -> TokenSet:
        access_token = token_payload.get("access_token")
        if not access_token:
            raise OAuthTokenExchangeError("Incomplete token payload returned from Google.")

        expiry_date = None
        expires_in = token_payload.get("expires_in")
        if expires_in:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            expiry_date = to_epoch_millis(expires_at)

        return TokenSet(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token"),
            token_type=token_payload.get("token_type"),
            scope=token_payload.get("scope"),
            expiry_date=expiry_date,
            id_token=token_payload.get("id_token"),
        )

    async def exchange_authorization_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for a token set."""
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": str(self._google.redirect_url),
            "grant_type": "authorization_code",
        }
        token_payload = await self._post_token_endpoint(payload)
        return self._token_set_from_payload(token_payload)

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        """Obtain a new access token using a stored refresh token."""
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        token_payload = await self._post_token_endpoint(payload)
        return self._token_set_from_payload(token_payload)


def _describe_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error", f"HTTP {response.status_code}")
    description = body.get("error_description")
    return f"{error}: {description}" if description else str(error)


__all__ = [
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "OAuthStateError",
    "OAuthTokenExchangeError",
    "user_email_from_id_token",
]
