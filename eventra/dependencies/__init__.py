"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_calendar_client,
    get_calendar_tool_service,
    get_credential_manager,
    get_google_oauth_client,
    get_oauth_state_encoder,
    get_token_cipher_service,
    get_token_refresher,
    get_token_store,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
    "get_calendar_client",
    "get_calendar_tool_service",
    "get_credential_manager",
    "get_google_oauth_client",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_refresher",
    "get_token_store",
]
