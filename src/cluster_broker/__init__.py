"""cluster-broker: connection and privilege-elevation broker for managed clusters."""

__version__ = "0.3.0"

from cluster_broker.config import BrokerConfig, build_sources, find_config, load_config
from cluster_broker.credentials.resolver import (
    ConfigSources,
    CredentialSourceResolver,
    ResolvedValue,
)
from cluster_broker.deadline import Deadline
from cluster_broker.errors import (
    AmbiguousClusterError,
    AuthenticationError,
    BrokerError,
    ClusterNotFoundError,
    ConfigFileNotFoundError,
    ConfigurationError,
    EmptyFileError,
    HiveNotFoundError,
    InvalidConfigError,
    LoginError,
    MissingCredentialsError,
    NetworkError,
    NotFoundError,
    ParseError,
    ResolutionError,
    UnreachableClusterError,
    ValidationError,
)
from cluster_broker.kube.client import KubeClient
from cluster_broker.kube.factory import ClientFactory
from cluster_broker.kube.validator import SessionValidator
from cluster_broker.models import (
    ClientVariant,
    ClusterIdentifierQuery,
    ClusterRecord,
    ConfigSource,
    ConnectionMode,
    ElevationRequest,
    Endpoint,
    HiveLink,
    IdentifierKind,
    RunResult,
    ValidationReport,
)
from cluster_broker.ocm.builder import (
    EnvironmentConnectionBuilder,
    FromConfigWithOverride,
    FromEnvironment,
    FromFile,
    load_endpoint,
)
from cluster_broker.ocm.connection import Connection
from cluster_broker.ocm.hive import HiveDiscovery
from cluster_broker.ocm.locator import ClusterLocator, classify
from cluster_broker.runner.runner import HiveLoginRunner

__all__ = [
    "AmbiguousClusterError",
    "AuthenticationError",
    "BrokerConfig",
    "BrokerError",
    "build_sources",
    "classify",
    "ClientFactory",
    "ClientVariant",
    "ClusterIdentifierQuery",
    "ClusterLocator",
    "ClusterNotFoundError",
    "ClusterRecord",
    "ConfigFileNotFoundError",
    "ConfigSource",
    "ConfigSources",
    "ConfigurationError",
    "Connection",
    "ConnectionMode",
    "CredentialSourceResolver",
    "Deadline",
    "ElevationRequest",
    "EmptyFileError",
    "Endpoint",
    "EnvironmentConnectionBuilder",
    "find_config",
    "FromConfigWithOverride",
    "FromEnvironment",
    "FromFile",
    "HiveDiscovery",
    "HiveLink",
    "HiveLoginRunner",
    "HiveNotFoundError",
    "IdentifierKind",
    "InvalidConfigError",
    "KubeClient",
    "load_config",
    "load_endpoint",
    "LoginError",
    "MissingCredentialsError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "ResolutionError",
    "ResolvedValue",
    "RunResult",
    "SessionValidator",
    "UnreachableClusterError",
    "ValidationError",
    "ValidationReport",
    "__version__",
]
