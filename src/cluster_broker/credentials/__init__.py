"""Credential source resolution."""

from cluster_broker.credentials.resolver import (
    ConfigSources,
    CredentialSourceResolver,
    ResolvedValue,
)

__all__ = [
    "ConfigSources",
    "CredentialSourceResolver",
    "ResolvedValue",
]
