"""Error taxonomy for the connection broker.

Every error carries optional diagnostic context (which step failed, which
identifier was being resolved, which client variant was being built) so a
failed run can be understood without re-running it.

Categories:
- ConfigurationError: missing or invalid credentials, files, settings
- ResolutionError: cluster or companion cluster not found / ambiguous
- AuthenticationError: token exchange or cluster login failed
- NetworkError: endpoint unreachable, deadline exceeded
- ValidationError: bad input (elevation reason) or failed sanity check
"""

from __future__ import annotations


class BrokerError(Exception):
    """Base class for all broker errors."""

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        identifier: str | None = None,
        variant: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.identifier = identifier
        self.variant = variant

    def with_context(
        self,
        *,
        step: str | None = None,
        identifier: str | None = None,
        variant: str | None = None,
    ) -> BrokerError:
        """Fill in context fields that are not already set. Returns self."""
        if self.step is None:
            self.step = step
        if self.identifier is None:
            self.identifier = identifier
        if self.variant is None:
            self.variant = variant
        return self

    @property
    def category(self) -> str:
        for cls in type(self).__mro__:
            if cls in _CATEGORIES:
                return cls.__name__
        return "BrokerError"

    def __str__(self) -> str:
        parts = []
        if self.step:
            parts.append(f"step={self.step}")
        if self.identifier:
            parts.append(f"identifier={self.identifier}")
        if self.variant:
            parts.append(f"variant={self.variant}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


# --- Categories ---


class ConfigurationError(BrokerError):
    """Missing or invalid credentials, files, or settings."""


class ResolutionError(BrokerError):
    """A cluster or companion cluster could not be resolved."""


class AuthenticationError(BrokerError):
    """Token exchange with the control plane failed."""


class NetworkError(BrokerError):
    """An endpoint could not be reached."""


class ValidationError(BrokerError):
    """Invalid input, or a built client failed its sanity check."""


_CATEGORIES = (
    ConfigurationError,
    ResolutionError,
    AuthenticationError,
    NetworkError,
    ValidationError,
)


# --- Configuration ---


class NotFoundError(ConfigurationError):
    """A configuration key is not set by any source."""


class MissingCredentialsError(ConfigurationError):
    """The environment lacks a URL or any usable token form."""


class ConfigFileNotFoundError(ConfigurationError, FileNotFoundError):
    """A config file does not exist or cannot be read."""


class EmptyFileError(ConfigurationError):
    """A config file exists but is empty."""


class ParseError(ConfigurationError):
    """A config file could not be parsed."""


class InvalidConfigError(ConfigurationError):
    """A config value passed to a builder is missing or unusable."""


class ConnectionClosedError(ConfigurationError):
    """A closed connection or client was used."""


# --- Resolution ---


class ClusterNotFoundError(ResolutionError):
    """No cluster matched the identifier."""


class AmbiguousClusterError(ResolutionError):
    """More than one cluster matched the identifier."""

    def __init__(self, message: str, *, candidates: list[str] | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.candidates = candidates or []


class HiveNotFoundError(ResolutionError):
    """No management cluster is associated with the target."""


# --- Authentication / network ---


class LoginError(AuthenticationError):
    """Per-cluster credential exchange was rejected."""


class UnreachableClusterError(NetworkError):
    """The cluster access endpoint could not be reached."""


class DeadlineExceededError(NetworkError):
    """The run was cancelled or ran past its deadline."""
