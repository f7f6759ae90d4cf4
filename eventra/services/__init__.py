"""Service layer exports."""

from .calendar_tools import CalendarToolService
from .credentials import (
    AuthorizationResult,
    AuthorizationStatus,
    CredentialLifecycleManager,
    CredentialSession,
)
from .google_tokens import TokenRefresher
from .token_cipher import TokenCipherService

__all__ = [
    "AuthorizationResult",
    "AuthorizationStatus",
    "CalendarToolService",
    "CredentialLifecycleManager",
    "CredentialSession",
    "TokenCipherService",
    "TokenRefresher",
]
