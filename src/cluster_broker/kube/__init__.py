"""Kubernetes client construction and session validation."""

from cluster_broker.kube.client import KubeClient
from cluster_broker.kube.factory import ClientFactory
from cluster_broker.kube.validator import SessionValidator, format_operator_table

__all__ = [
    "ClientFactory",
    "KubeClient",
    "SessionValidator",
    "format_operator_table",
]
