"""
HTTP routes: health, tool catalog and the OAuth callback receiver.

``callback_router`` is mounted by both transports (the standalone callback
listener in stdio mode and the network server in SSE mode) so the redirect
is handled by the same code either way.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from eventra.api.tools import SERVER_VERSION, TOOL_CATALOG
from eventra.clients.google_auth import OAuthStateError
from eventra.dependencies import get_app_settings, get_credential_manager

router = APIRouter()
callback_router = APIRouter()
logger = logging.getLogger(__name__)

_PAGE_STYLE = (
    "font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; "
    "padding: 40px 20px; background-color: #f5f5f5;"
)


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <title>Eventra - {html.escape(title)}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
  </head>
  <body style="{_PAGE_STYLE}">
    <div style="background-color: white; padding: 30px; border-radius: 8px;">
      <h1>{html.escape(title)}</h1>
      {body}
    </div>
  </body>
</html>
"""


def render_code_page(code: str) -> str:
    """Page showing the authorization code for manual copy into the conversation."""
    body = f"""
      <p>Please copy the code below and paste it back into your conversation with the AI assistant:</p>
      <div style="background-color: #f8f9fa; padding: 15px; border: 1px solid #e9ecef;">
        <code id="auth-code" style="word-break: break-all; user-select: all;">{html.escape(code)}</code>
      </div>
      <button onclick="navigator.clipboard.writeText(document.getElementById('auth-code').textContent)">
        Copy Code
      </button>
      <button onclick="window.close()">Close</button>
      <p>After pasting the code, the assistant will be able to create calendar events for you.</p>
    """
    return _page("Authorization Successful", body)


def render_connected_page(message: str) -> str:
    body = f"<p>{html.escape(message)}</p><p>You can close this window.</p>"
    return _page("Authorization Successful", body)


def render_failure_page(reason: str) -> str:
    body = f"<p>{html.escape(reason)}</p><p>Please try again.</p>"
    return _page("Authorization Failed", body)


@callback_router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": TOOL_CATALOG["server"],
        "version": SERVER_VERSION,
    }


@callback_router.get("/oauth2callback", response_class=HTMLResponse)
async def handle_oauth_callback(
    settings: Annotated[Any, Depends(get_app_settings)],
    credential_manager: Annotated[Any, Depends(get_credential_manager)],
    code: str | None = Query(default=None, description="Authorization code from Google."),
    state: str | None = Query(default=None, description="Signed state issued with the consent URL."),
    error: str | None = Query(default=None, description="Error reported by Google."),
) -> HTMLResponse:
    """
    Receive the identity provider's redirect.

    By default the code is only displayed, because the assistant cannot see
    the browser; with ``OAUTH_CALLBACK_EXCHANGE`` enabled the exchange is
    completed here for the user named in ``state``.
    """
    if not code:
        reason = "No authorization code was received."
        if error:
            reason = f"{reason} Google reported: {error}."
        return HTMLResponse(render_failure_page(reason), status_code=HTTPStatus.BAD_REQUEST)

    if not settings.oauth.callback_exchange:
        return HTMLResponse(render_code_page(code))

    user_id = settings.default_user_id
    if state:
        try:
            user_id = credential_manager.user_id_from_state(state) or user_id
        except OAuthStateError as exc:
            return HTMLResponse(
                render_failure_page(str(exc)), status_code=HTTPStatus.BAD_REQUEST
            )

    session = credential_manager.session(user_id)
    result = await credential_manager.complete_authorization(session, code)
    if not result.success:
        logger.warning("Callback exchange failed for user %s: %s", user_id, result.error)
        return HTMLResponse(
            render_failure_page(result.error or "Authorization failed."),
            status_code=HTTPStatus.BAD_GATEWAY,
        )
    return HTMLResponse(render_connected_page(result.message or ""))


@router.get("/tools", status_code=HTTPStatus.OK)
async def list_tools() -> dict:
    """Static description of the available tools and endpoints."""
    return TOOL_CATALOG


__all__ = [
    "callback_router",
    "render_code_page",
    "render_connected_page",
    "render_failure_page",
    "router",
]
