"""SQLite-backed credential record store with one OAuth token set per user."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, TYPE_CHECKING

from eventra.core.errors import PersistenceError, ValidationError
from eventra.models.oauth import LookupResult, StoredOAuthToken, TokenSet

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from eventra.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    # Fixed-width UTC text so SQL string comparison matches time ordering.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value or None


_CREATE_TOKENS_TABLE = """
CREATE TABLE IF NOT EXISTS oauth_tokens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL UNIQUE,
    access_token TEXT NOT NULL,
    refresh_token TEXT,
    token_type TEXT NOT NULL DEFAULT 'Bearer',
    scope TEXT,
    expires_at TEXT NOT NULL,
    id_token TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_UPSERT_TOKEN = """
INSERT INTO oauth_tokens (
    user_id, access_token, refresh_token, token_type, scope,
    expires_at, id_token, user_email, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(user_id) DO UPDATE SET
    access_token = excluded.access_token,
    refresh_token = COALESCE(excluded.refresh_token, oauth_tokens.refresh_token),
    token_type = excluded.token_type,
    scope = COALESCE(excluded.scope, oauth_tokens.scope),
    expires_at = excluded.expires_at,
    id_token = COALESCE(excluded.id_token, oauth_tokens.id_token),
    user_email = COALESCE(excluded.user_email, oauth_tokens.user_email),
    updated_at = excluded.updated_at
"""

_UPDATE_TOKEN = """
UPDATE oauth_tokens SET
    access_token = ?,
    refresh_token = COALESCE(?, refresh_token),
    token_type = ?,
    scope = COALESCE(?, scope),
    expires_at = ?,
    id_token = COALESCE(?, id_token),
    updated_at = ?
WHERE user_id = ?
"""


class SQLiteTokenStore:
    """
    Persist OAuth credential records keyed by ``user_id``.

    ``save`` is the only operation that raises on storage faults. Every other
    operation logs the fault and returns a neutral result so that a broken
    database never takes down a tool call.
    """

    def __init__(
        self,
        db_path: str,
        *,
        cipher: Optional["TokenCipherService"] = None,
        default_ttl: timedelta = timedelta(hours=1),
        clock: Clock = _utcnow,
        ensure_schema: bool = True,
    ) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        self._default_ttl = default_ttl
        self._clock = clock
        if ensure_schema:
            self.ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        """Create the token table and apply pending migrations."""
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._transaction() as conn:
            conn.execute(_CREATE_TOKENS_TABLE)
            self._migrate(conn)

    @staticmethod
    def _migrate(conn: sqlite3.Connection) -> None:
        """Apply additive migrations to databases created by older releases."""
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(oauth_tokens)")}
        if "user_email" not in columns:
            logger.info("Adding user_email column to oauth_tokens")
            conn.execute("ALTER TABLE oauth_tokens ADD COLUMN user_email TEXT")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_oauth_tokens_user_email "
            "ON oauth_tokens (user_email)"
        )

    def _encrypt(self, value: Optional[str]) -> Optional[str]:
        if self._cipher is None:
            return value
        return self._cipher.encrypt(value)

    def _decrypt(self, value: Optional[str]) -> Optional[str]:
        if self._cipher is None:
            return value
        return self._cipher.decrypt(value)

    def save(
        self, user_id: str, token_set: TokenSet, user_email: Optional[str] = None
    ) -> None:
        """
        Upsert the credential record for ``user_id``.

        Fields the provider omitted (refresh token, scope, ID token, email) keep
        their stored values, since a refresh response never repeats them. When
        the provider omits ``expiry_date`` the configured default lifetime is
        assumed.
        """
        if not token_set.access_token:
            raise ValidationError("Invalid tokens: access_token is required")

        now = self._clock()
        expires_at = token_set.expires_at or now + self._default_ttl
        params = (
            user_id,
            self._encrypt(token_set.access_token),
            self._encrypt(_blank_to_none(token_set.refresh_token)),
            token_set.token_type or "Bearer",
            _blank_to_none(token_set.scope),
            _format_timestamp(expires_at),
            self._encrypt(_blank_to_none(token_set.id_token)),
            _blank_to_none(user_email),
            _format_timestamp(now),
            _format_timestamp(now),
        )
        try:
            with self._transaction() as conn:
                conn.execute(_UPSERT_TOKEN, params)
        except sqlite3.Error as exc:
            logger.error("Failed to save tokens for user %s: %s", user_id, exc)
            raise PersistenceError("Failed to save tokens to database") from exc
        logger.info("Tokens saved for user %s", user_id)

    def update_tokens(self, user_id: str, token_set: TokenSet) -> bool:
        """
        Overwrite the token fields of an existing record.

        Never inserts: returns ``False`` when no record exists for ``user_id``,
        so a renewal cannot bring back a record that was deleted meanwhile.
        """
        if not token_set.access_token:
            raise ValidationError("Invalid tokens: access_token is required")

        now = self._clock()
        expires_at = token_set.expires_at or now + self._default_ttl
        params = (
            self._encrypt(token_set.access_token),
            self._encrypt(_blank_to_none(token_set.refresh_token)),
            token_set.token_type or "Bearer",
            _blank_to_none(token_set.scope),
            _format_timestamp(expires_at),
            self._encrypt(_blank_to_none(token_set.id_token)),
            _format_timestamp(now),
            user_id,
        )
        try:
            with self._transaction() as conn:
                cursor = conn.execute(_UPDATE_TOKEN, params)
        except sqlite3.Error as exc:
            logger.error("Failed to update tokens for user %s: %s", user_id, exc)
            raise PersistenceError("Failed to update tokens in database") from exc
        if cursor.rowcount == 0:
            logger.info("No stored tokens to update for user %s", user_id)
            return False
        return True

    def get_record(self, user_id: str) -> LookupResult[StoredOAuthToken]:
        """Return the full stored record, decrypted."""
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT * FROM oauth_tokens WHERE user_id = ?", (user_id,)
                ).fetchone()
            if row is None:
                return LookupResult.miss()
            record = StoredOAuthToken(
                user_id=row["user_id"],
                access_token=self._decrypt(row["access_token"]),
                refresh_token=self._decrypt(row["refresh_token"]),
                token_type=row["token_type"],
                scope=row["scope"],
                expires_at=datetime.fromisoformat(row["expires_at"]),
                id_token=self._decrypt(row["id_token"]),
                user_email=row["user_email"],
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
        except (sqlite3.Error, ValueError) as exc:
            logger.error("Failed to load tokens for user %s: %s", user_id, exc)
            return LookupResult.fault(str(exc))
        return LookupResult.hit(record)

    def load(self, user_id: str) -> LookupResult[TokenSet]:
        """
        Return the stored token set for ``user_id``.

        Expired records are returned as well; renewing them with the refresh
        token is the caller's decision.
        """
        result = self.get_record(user_id)
        if not result.found:
            return LookupResult(result.outcome, error=result.error)
        record = result.value
        if record.expires_at <= self._clock():
            logger.info("Token for user %s is expired", user_id)
        return LookupResult.hit(record.to_token_set())

    def get_user_email(self, user_id: str) -> LookupResult[str]:
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT user_email FROM oauth_tokens WHERE user_id = ?", (user_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to read email for user %s: %s", user_id, exc)
            return LookupResult.fault(str(exc))
        if row is None or row["user_email"] is None:
            return LookupResult.miss()
        return LookupResult.hit(row["user_email"])

    def delete(self, user_id: str) -> LookupResult[bool]:
        """Delete the record for ``user_id``; a missing record is not an error."""
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM oauth_tokens WHERE user_id = ?", (user_id,)
                )
        except sqlite3.Error as exc:
            logger.error("Failed to delete tokens for user %s: %s", user_id, exc)
            return LookupResult.fault(str(exc))
        if cursor.rowcount == 0:
            return LookupResult.miss()
        logger.info("Tokens deleted for user %s", user_id)
        return LookupResult.hit(True)

    def has_valid_tokens(self, user_id: str) -> bool:
        """True when a record exists whose expiry is strictly in the future."""
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) AS total FROM oauth_tokens "
                    "WHERE user_id = ? AND expires_at > ?",
                    (user_id, _format_timestamp(self._clock())),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to check token validity for user %s: %s", user_id, exc)
            return False
        return row["total"] > 0

    def cleanup_expired_tokens(self) -> int:
        """Delete expired records that have no refresh token; return the count."""
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM oauth_tokens "
                    "WHERE expires_at < ? AND refresh_token IS NULL",
                    (_format_timestamp(self._clock()),),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to clean up expired tokens: %s", exc)
            return 0
        if cursor.rowcount:
            logger.info("Removed %d unrefreshable expired token records", cursor.rowcount)
        return cursor.rowcount


__all__ = ["SQLiteTokenStore"]
