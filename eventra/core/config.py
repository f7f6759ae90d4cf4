"""
Application configuration models and helpers.

Centralizes settings management so both transports (stdio and network) and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

CALENDAR_SCOPES = (
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
)


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class GoogleSettings(BaseSettings):
    """Configuration required for interacting with Google APIs."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_url: AnyHttpUrl = Field(..., validation_alias="GOOGLE_REDIRECT_URL")
    public_api_key: str = Field(
        ...,
        validation_alias="GOOGLE_PUBLIC_API_KEY",
        description="API key used for read-only calendar queries.",
    )
    calendar_id: str = Field("primary", validation_alias="CALENDAR_ID")


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        CALENDAR_SCOPES, validation_alias="OAUTH_SCOPES"
    )
    default_token_ttl_seconds: int = Field(
        3600,
        validation_alias="OAUTH_DEFAULT_TOKEN_TTL",
        description=(
            "Lifetime assumed when the provider omits expiry_date. This is a local "
            "policy, not a provider guarantee."
        ),
    )
    refresh_window_seconds: int = Field(300, validation_alias="OAUTH_REFRESH_WINDOW")
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    max_attempts: int = Field(
        1,
        ge=1,
        validation_alias="OAUTH_MAX_ATTEMPTS",
        description="Token endpoint attempts; only transport faults are retried.",
    )
    retry_backoff_seconds: float = Field(0.5, validation_alias="OAUTH_RETRY_BACKOFF")
    callback_exchange: bool = Field(
        False,
        validation_alias="OAUTH_CALLBACK_EXCHANGE",
        description="Complete the code exchange directly from the callback page.",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class ServerSettings(BaseSettings):
    """Transport and listener configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    transport: Literal["stdio", "network"] = Field(
        "stdio", validation_alias="MCP_TRANSPORT"
    )
    host: str = Field("0.0.0.0", validation_alias="SERVER_HOST")
    port: int = Field(3000, validation_alias="SERVER_PORT")
    use_https: bool = Field(False, validation_alias="USE_HTTPS")
    ssl_cert_path: Optional[str] = Field(None, validation_alias="SSL_CERT_PATH")
    ssl_key_path: Optional[str] = Field(None, validation_alias="SSL_KEY_PATH")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


def sqlite_path_from_url(url: str) -> str:
    """Resolve ``sqlite:///relative`` / ``sqlite:////absolute`` URLs to a path."""
    prefix = "sqlite:///"
    if url.startswith(prefix):
        return url[len(prefix):]
    if "://" in url:
        raise ValueError(f"Unsupported database URL: {url}")
    return url


class AppSettings(BaseSettings):
    """Root settings object for the Eventra server."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    default_user_id: str = Field("default_user", validation_alias="DEFAULT_USER_ID")
    database_url: str = Field(
        "sqlite:///data/eventra.db",
        validation_alias="DATABASE_URL",
        description="sqlite:/// URL or plain path of the token database.",
    )
    request_timeout_seconds: float = Field(10.0, validation_alias="REQUEST_TIMEOUT")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @field_validator("database_url")
    @classmethod
    def _require_sqlite_url(cls, value: str) -> str:
        # Only SQLite is supported; reject other schemes when settings load.
        sqlite_path_from_url(value)
        return value

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_path(self) -> str:
        """Filesystem path of the SQLite database named by ``database_url``."""
        return sqlite_path_from_url(self.database_url)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CALENDAR_SCOPES",
    "GoogleSettings",
    "OAuthSettings",
    "SecuritySettings",
    "ServerSettings",
    "get_settings",
    "sqlite_path_from_url",
]
