"""Credential source resolver — finds a setting across ordered sources.

Sources, highest precedence first:
1. Explicit override (CLI flag or caller argument)
2. Environment variable
3. Config file (``cluster-broker.yaml``)
4. Built-in default

The resolver reports the highest-precedence source that *sets* a key,
even when a lower source holds the same text. It never reads global
state: all sources come from an injected ``ConfigSources`` snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cluster_broker.errors import NotFoundError
from cluster_broker.models import ConfigSource

ENV_VARS: dict[str, str] = {
    "url": "OCM_URL",
    "access_token": "OCM_TOKEN",
    "refresh_token": "OCM_REFRESH_TOKEN",
    "client_id": "OCM_CLIENT_ID",
    "client_secret": "OCM_CLIENT_SECRET",
    "token_url": "OCM_TOKEN_URL",
    "backplane_url": "BACKPLANE_URL",
    "hive_ocm_url": "HIVE_OCM_URL",
    "hive_ocm_config": "HIVE_OCM_CONFIG",
}

SECRET_KEYS = frozenset({"access_token", "refresh_token", "client_secret"})


def env_var_for(key: str) -> str:
    """Environment variable consulted for *key*."""
    return ENV_VARS.get(key, key.upper().replace("-", "_"))


@dataclass(frozen=True)
class ConfigSources:
    """Already-loaded configuration state, one mapping per source."""

    overrides: Mapping[str, Any] = field(default_factory=dict)
    environment: Mapping[str, str] = field(default_factory=dict)
    config_file: Mapping[str, Any] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    config_path: Path | None = None


@dataclass(frozen=True)
class ResolvedValue:
    key: str
    value: Any
    source: ConfigSource

    @property
    def display_value(self) -> str:
        if self.key in SECRET_KEYS and self.value:
            return "****"
        return str(self.value)


class CredentialSourceResolver:
    """Resolves configuration values by trying ordered sources.

    Pure over the injected ``ConfigSources``; no I/O at call time.
    """

    def __init__(self, sources: ConfigSources) -> None:
        self._sources = sources
        self._lookups = (
            (ConfigSource.EXPLICIT_OVERRIDE, self._from_overrides),
            (ConfigSource.ENVIRONMENT_VARIABLE, self._from_environment),
            (ConfigSource.CONFIG_FILE, self._from_config_file),
            (ConfigSource.DEFAULT, self._from_defaults),
        )

    @property
    def sources(self) -> ConfigSources:
        return self._sources

    def resolve(self, key: str) -> ResolvedValue:
        """Return the value of *key* and the source that set it.

        Raises:
            NotFoundError: If no source sets the key.
        """
        for source, lookup in self._lookups:
            found, value = lookup(key)
            if found:
                return ResolvedValue(key=key, value=value, source=source)
        raise NotFoundError(
            f"Configuration key '{key}' not found "
            f"(set {env_var_for(key)} or '{key}' in the config file)",
            identifier=key,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Value of *key*, or *default* when no source sets it."""
        try:
            return self.resolve(key).value
        except NotFoundError:
            return default

    def is_set(self, key: str) -> bool:
        return any(lookup(key)[0] for _, lookup in self._lookups)

    def describe(self) -> list[ResolvedValue]:
        """Every key known to any source, resolved, sorted by key."""
        keys: set[str] = set(ENV_VARS)
        keys.update(self._sources.overrides)
        keys.update(self._sources.config_file)
        keys.update(self._sources.defaults)
        return [self.resolve(k) for k in sorted(keys) if self.is_set(k)]

    # --- Private: per-source lookups ---

    def _from_overrides(self, key: str) -> tuple[bool, Any]:
        return _lookup(self._sources.overrides, key)

    def _from_environment(self, key: str) -> tuple[bool, Any]:
        return _lookup(self._sources.environment, env_var_for(key))

    def _from_config_file(self, key: str) -> tuple[bool, Any]:
        return _lookup(self._sources.config_file, key)

    def _from_defaults(self, key: str) -> tuple[bool, Any]:
        return _lookup(self._sources.defaults, key)


def _lookup(data: Mapping[str, Any], key: str) -> tuple[bool, Any]:
    """Empty strings count as unset, like an exported-but-blank env var."""
    value = data.get(key)
    if value is None or value == "":
        return False, None
    return True, value
