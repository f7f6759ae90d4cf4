"""
Domain models for OAuth token persistence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_millis(moment: datetime) -> int:
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=millis)


class TokenSet(BaseModel):
    """Token payload in the shape the Google OAuth endpoints return it."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expiry_date: Optional[int] = Field(
        None, description="Absolute expiry in epoch milliseconds."
    )
    id_token: Optional[str] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expiry_date is None:
            return None
        return from_epoch_millis(self.expiry_date)

    def is_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and expires_at <= now


class StoredOAuthToken(BaseModel):
    """Represents one user's credential record in the token database."""

    user_id: str = Field(..., description="Unique principal identifier.")
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None
    expires_at: datetime
    id_token: Optional[str] = None
    user_email: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def to_token_set(self) -> TokenSet:
        return TokenSet(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            token_type=self.token_type,
            scope=self.scope,
            expiry_date=to_epoch_millis(self.expires_at),
            id_token=self.id_token,
        )


class LookupOutcome(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAULTED = "faulted"


@dataclass(slots=True)
class LookupResult(Generic[T]):
    """Outcome-tagged result for best-effort store reads and maintenance."""

    outcome: LookupOutcome
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.outcome is LookupOutcome.FOUND

    @property
    def faulted(self) -> bool:
        return self.outcome is LookupOutcome.FAULTED

    @classmethod
    def hit(cls, value: T) -> "LookupResult[T]":
        return cls(LookupOutcome.FOUND, value)

    @classmethod
    def miss(cls) -> "LookupResult[T]":
        return cls(LookupOutcome.NOT_FOUND)

    @classmethod
    def fault(cls, error: str) -> "LookupResult[T]":
        return cls(LookupOutcome.FAULTED, error=error)


__all__ = [
    "LookupOutcome",
    "LookupResult",
    "StoredOAuthToken",
    "TokenSet",
    "from_epoch_millis",
    "to_epoch_millis",
]
