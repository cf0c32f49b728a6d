"""Config file loading and auto-discovery for cluster-broker.

Searches for ``cluster-broker.yaml`` in the current directory and parent
directories, parses it, and exposes its settings as one of the sources
the credential resolver consults.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from cluster_broker.credentials.resolver import ConfigSources
from cluster_broker.models import DEFAULT_TOKEN_URL

CONFIG_FILENAME = "cluster-broker.yaml"

DEFAULTS: dict[str, str] = {
    "token_url": DEFAULT_TOKEN_URL,
}


@dataclass(frozen=True)
class BrokerConfig:
    """Parsed cluster-broker configuration."""

    config_path: Path | None = None
    settings: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``cluster-broker.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> BrokerConfig:
    """Load a cluster-broker config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``BrokerConfig``.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return BrokerConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> BrokerConfig:
    """Read and parse a YAML config file.

    Relative ``hive_ocm_config`` paths are resolved against the config
    file's directory.
    """
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    settings = {str(k).replace("-", "_"): v for k, v in data.items() if v is not None}
    hive_cfg = settings.get("hive_ocm_config")
    if hive_cfg:
        settings["hive_ocm_config"] = str((config_path.parent / str(hive_cfg)).resolve())

    return BrokerConfig(config_path=config_path, settings=settings)


def build_sources(
    config: BrokerConfig | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigSources:
    """Snapshot every configuration source into one explicit value.

    The environment is copied at call time, so later changes to
    ``os.environ`` do not leak into a resolver built from the result.
    """
    config = config or BrokerConfig()
    return ConfigSources(
        overrides={k: v for k, v in (overrides or {}).items() if v not in (None, "")},
        environment=dict(os.environ if environ is None else environ),
        config_file=dict(config.settings),
        defaults=dict(DEFAULTS),
        config_path=config.config_path,
    )
