"""Error types for fanssh."""

from __future__ import annotations


class FanoutError(Exception):
    """Base class for all fanssh errors."""


class ConfigurationError(FanoutError):
    """Invocation-fatal error detected before any host is contacted."""


class KeyLoadError(ConfigurationError):
    """Private key could not be read or parsed."""

    def __init__(self, path: str, original_error: Exception):
        self.path = path
        self.original_error = original_error
        super().__init__(f"Cannot load private key {path}: {original_error}")


class ListParseWarning(UserWarning):
    """A host list row was malformed and skipped."""


class HostError(FanoutError):
    """Failure confined to a single host."""

    def __init__(self, host: str, message: str):
        self.host = host
        self.message = message
        super().__init__(message)


class ConnectFailure(HostError):
    """The connection to a host could not be established."""


class OperationFailure(HostError):
    """The host was reachable but the operation failed."""
