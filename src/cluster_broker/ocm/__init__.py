"""Control-plane connections, cluster lookup and Hive discovery."""

from cluster_broker.ocm.builder import (
    EnvironmentConnectionBuilder,
    FromConfigWithOverride,
    FromEnvironment,
    FromFile,
    load_endpoint,
)
from cluster_broker.ocm.connection import Connection
from cluster_broker.ocm.hive import HiveDiscovery
from cluster_broker.ocm.locator import ClusterLocator, build_search, classify

__all__ = [
    "ClusterLocator",
    "Connection",
    "EnvironmentConnectionBuilder",
    "FromConfigWithOverride",
    "FromEnvironment",
    "FromFile",
    "HiveDiscovery",
    "build_search",
    "classify",
    "load_endpoint",
]
