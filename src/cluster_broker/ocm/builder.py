"""Builds authenticated control-plane connections.

Three build modes:

- ``FromEnvironment``: endpoint fields come from the credential resolver
  (explicit override, environment variable, config file, default).
- ``FromFile(path)``: endpoint fields come from an ``ocm.json``-style
  JSON document.
- ``FromConfigWithOverride(endpoint, url)``: an existing endpoint cloned
  with only its URL replaced.

A returned connection is always authenticated. If authentication fails
the half-built connection is closed before the error propagates.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from cluster_broker.credentials.resolver import CredentialSourceResolver, env_var_for
from cluster_broker.deadline import Deadline
from cluster_broker.errors import (
    BrokerError,
    ConfigFileNotFoundError,
    EmptyFileError,
    InvalidConfigError,
    MissingCredentialsError,
    ParseError,
)
from cluster_broker.models import Endpoint
from cluster_broker.ocm.connection import Connection
from cluster_broker.ocm.transport import Transport

logger = logging.getLogger(__name__)

_ENDPOINT_KEYS = ("url", "access_token", "refresh_token", "client_id", "client_secret", "token_url")


# --- Build modes ---


@dataclass(frozen=True)
class FromEnvironment:
    """Endpoint from ambient credentials."""


@dataclass(frozen=True)
class FromFile:
    """Endpoint from a JSON config file."""

    path: str | Path


@dataclass(frozen=True)
class FromConfigWithOverride:
    """Existing endpoint with its URL replaced."""

    endpoint: Endpoint | None
    url: str


BuildMode = FromEnvironment | FromFile | FromConfigWithOverride

ConnectionFactory = Callable[..., Connection]


# --- Endpoint loading ---


def load_endpoint(path: str | Path) -> Endpoint:
    """Parse an ``ocm.json``-style file into an Endpoint.

    A file without ``url`` targets the public control plane.

    Raises:
        ConfigFileNotFoundError: If the file cannot be read.
        EmptyFileError: If the file is empty.
        ParseError: If the content is not UTF-8 text holding a JSON object.
    """
    file_path = Path(path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigFileNotFoundError(
            f"Can't read config file '{file_path}': {e.strerror or e}",
            identifier=str(file_path),
        ) from e
    except UnicodeDecodeError as e:
        raise ParseError(
            f"Can't parse config file '{file_path}': not valid UTF-8 (byte {e.start})",
            identifier=str(file_path),
        ) from e

    if not text.strip():
        raise EmptyFileError(
            f"Empty config file '{file_path}'", identifier=str(file_path),
        )

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Can't parse config file '{file_path}': {e.msg} "
            f"(line {e.lineno}, column {e.colno})",
            identifier=str(file_path),
        ) from e

    if not isinstance(data, dict):
        raise ParseError(
            f"Can't parse config file '{file_path}': expected a JSON object, "
            f"got {type(data).__name__}",
            identifier=str(file_path),
        )

    try:
        return Endpoint.model_validate({k: v for k, v in data.items() if v is not None})
    except PydanticValidationError as e:
        raise ParseError(
            f"Can't parse config file '{file_path}': {e.error_count()} invalid field(s)",
            identifier=str(file_path),
        ) from e


def endpoint_from_resolver(resolver: CredentialSourceResolver) -> Endpoint:
    """Build an Endpoint from ambient credentials.

    Raises:
        MissingCredentialsError: If the URL is unset, or neither a bearer
            token nor a client-id/secret pair is available.
        InvalidConfigError: If a resolved value is not a string.
    """
    values = {key: resolver.get(key) for key in _ENDPOINT_KEYS}

    if not values["url"]:
        raise MissingCredentialsError(
            f"Control plane URL is not set ({env_var_for('url')})",
            identifier="url",
        )
    try:
        endpoint = Endpoint.model_validate({k: v for k, v in values.items() if v})
    except PydanticValidationError as e:
        keys = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise InvalidConfigError(
            f"Invalid value for {', '.join(keys) or 'endpoint'}: expected a string",
            identifier=keys[0] if keys else None,
        ) from e
    if not (endpoint.has_bearer_token or endpoint.has_client_credentials):
        raise MissingCredentialsError(
            f"No credentials for {endpoint.url}: set {env_var_for('access_token')} "
            f"or {env_var_for('refresh_token')}, or both "
            f"{env_var_for('client_id')} and {env_var_for('client_secret')}",
            identifier="credentials",
        )
    return endpoint


# --- Builder ---


class EnvironmentConnectionBuilder:
    """Builds authenticated connections from one of three sources."""

    def __init__(
        self,
        resolver: CredentialSourceResolver,
        *,
        transport: Transport | None = None,
        deadline: Deadline | None = None,
        connection_factory: ConnectionFactory = Connection,
    ) -> None:
        self._resolver = resolver
        self._transport = transport
        self._deadline = deadline or Deadline()
        self._connection_factory = connection_factory

    @property
    def resolver(self) -> CredentialSourceResolver:
        return self._resolver

    @property
    def deadline(self) -> Deadline:
        return self._deadline

    def endpoint_for(self, mode: BuildMode) -> Endpoint:
        """Resolve the Endpoint a build *mode* would connect to."""
        match mode:
            case FromEnvironment():
                return endpoint_from_resolver(self._resolver)
            case FromFile(path=path):
                return load_endpoint(path)
            case FromConfigWithOverride(endpoint=endpoint, url=url):
                if endpoint is None or not isinstance(endpoint, Endpoint):
                    raise InvalidConfigError(
                        "Cannot build a connection from a missing config",
                    )
                if not (endpoint.has_bearer_token or endpoint.has_client_credentials):
                    raise InvalidConfigError(
                        f"Cannot build a connection from an empty config for {url or endpoint.url}",
                    )
                if not url:
                    raise InvalidConfigError(
                        "Cannot override the config URL with an empty value",
                    )
                return endpoint.with_url(url)
            case _:
                raise InvalidConfigError(f"Unknown build mode: {mode!r}")

    def build(self, mode: BuildMode) -> Connection:
        """Build and authenticate a connection for *mode*."""
        endpoint = self.endpoint_for(mode)
        return self.open(endpoint)

    def open(self, endpoint: Endpoint) -> Connection:
        """Open and authenticate a connection to *endpoint*."""
        conn = self._connection_factory(
            endpoint, transport=self._transport, deadline=self._deadline,
        )
        try:
            conn.authenticate()
        except BaseException as e:
            conn.close()
            if isinstance(e, BrokerError):
                e.with_context(identifier=endpoint.url)
            raise
        logger.debug("Opened connection to %s", endpoint.url)
        return conn

    # --- Convenience wrappers ---

    def from_environment(self) -> Connection:
        return self.build(FromEnvironment())

    def from_file(self, path: str | Path) -> Connection:
        return self.build(FromFile(path))

    def from_config_with_override(self, endpoint: Endpoint | None, url: str) -> Connection:
        return self.build(FromConfigWithOverride(endpoint, url))
