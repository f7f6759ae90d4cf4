"""Error taxonomy shared by the store, the provider clients and the tool layer."""


class EventraError(Exception):
    """Base class for expected failures raised by Eventra components."""


class ValidationError(EventraError):
    """Input was rejected before any external call was attempted."""


class ProviderError(EventraError):
    """The identity or calendar provider rejected a request."""


class ProviderTimeoutError(ProviderError):
    """A provider call did not complete within the configured timeout."""


class PersistenceError(EventraError):
    """The token database could not complete a write."""


class CredentialsRevokedError(EventraError):
    """The stored credential record disappeared while a session still held it."""


class StartupError(EventraError):
    """Required configuration or infrastructure is unavailable at startup."""


__all__ = [
    "CredentialsRevokedError",
    "EventraError",
    "PersistenceError",
    "ProviderError",
    "ProviderTimeoutError",
    "StartupError",
    "ValidationError",
]
