"""SessionValidator — proves a built client actually works.

Each client first reads the cluster-scoped operator status list.
Standard clients then list namespaces. Elevated clients instead get a
read that only an administrative identity can perform, which proves
elevation took effect:

- on a Hive client for a managed cluster, the managed cluster's
  ClusterDeployment
- otherwise, the pods of ``openshift-monitoring``
"""

from __future__ import annotations

import logging
from typing import Any

from cluster_broker.errors import BrokerError, ValidationError
from cluster_broker.kube.client import KubeClient
from cluster_broker.models import (
    ClientVariant,
    ClusterRecord,
    OperatorStatus,
    ValidationReport,
)

logger = logging.getLogger(__name__)

MONITORING_NAMESPACE = "openshift-monitoring"

_CLUSTER_OPERATORS = ("config.openshift.io", "v1", "clusteroperators")
_CLUSTER_DEPLOYMENTS = ("hive.openshift.io", "v1", "clusterdeployments")


class SessionValidator:
    """Exercises a client with reads appropriate to its tier."""

    def validate(
        self,
        client: KubeClient,
        managed_cluster: ClusterRecord | None = None,
    ) -> ValidationReport:
        """Validate *client*; raise ``ValidationError`` tagged with its variant.

        Args:
            client: The client to exercise.
            managed_cluster: For a Hive client, the managed cluster whose
                ClusterDeployment the elevated check looks up.
        """
        report = ValidationReport(
            variant=client.variant,
            mode=client.mode,
            cluster_id=client.cluster.internal_id,
        )
        check = "list cluster operators"
        try:
            report.operators = self._list_operators(client)
            if client.variant == ClientVariant.ELEVATED:
                if managed_cluster is not None:
                    check = "get cluster deployment"
                    report.elevated_check = self._find_cluster_deployment(
                        client, managed_cluster,
                    )
                else:
                    check = f"list pods in {MONITORING_NAMESPACE}"
                    report.elevated_check = self._list_monitoring_pods(client)
            else:
                check = "list namespaces"
                report.namespace_count = self._count_namespaces(client)
        except BrokerError as e:
            raise e.with_context(identifier=client.cluster.internal_id, variant=client.label)
        except Exception as e:
            raise ValidationError(
                f"{check} failed on cluster '{client.cluster.internal_id}': {_describe(e)}",
                identifier=client.cluster.internal_id,
                variant=client.label,
            ) from e

        logger.debug(
            "Validated %s client for %s (%d operators)",
            client.label, client.cluster.internal_id, len(report.operators),
        )
        return report

    # --- Private: reads ---

    def _list_operators(self, client: KubeClient) -> list[OperatorStatus]:
        group, version, plural = _CLUSTER_OPERATORS
        api = client.api("CustomObjectsApi")
        result = api.list_cluster_custom_object(
            group, version, plural, _request_timeout=client.request_timeout(),
        )
        return [_operator_status(item) for item in _items(result)]

    def _find_cluster_deployment(
        self, client: KubeClient, managed_cluster: ClusterRecord,
    ) -> str:
        group, version, plural = _CLUSTER_DEPLOYMENTS
        api = client.api("CustomObjectsApi")
        result = api.list_cluster_custom_object(
            group, version, plural, _request_timeout=client.request_timeout(),
        )
        for item in _items(result):
            meta = item.get("metadata") or {}
            namespace = meta.get("namespace") or ""
            if managed_cluster.internal_id in namespace:
                return f"ClusterDeployment {namespace}/{meta.get('name', '')}"
        raise ValidationError(
            f"ClusterDeployment for cluster '{managed_cluster.internal_id}' not found "
            f"on Hive cluster '{client.cluster.internal_id}'",
            identifier=client.cluster.internal_id,
            variant=client.label,
        )

    def _count_namespaces(self, client: KubeClient) -> int:
        api = client.api("CoreV1Api")
        namespaces = api.list_namespace(_request_timeout=client.request_timeout())
        return len(namespaces.items or [])

    def _list_monitoring_pods(self, client: KubeClient) -> str:
        api = client.api("CoreV1Api")
        pods = api.list_namespaced_pod(
            MONITORING_NAMESPACE, _request_timeout=client.request_timeout(),
        )
        return f"{len(pods.items or [])} pods in {MONITORING_NAMESPACE}"


def format_operator_table(report: ValidationReport) -> list[str]:
    """Render the operator status rows of *report* as aligned lines."""
    rows = [("NAME", "AVAILABLE", "PROGRESSING", "DEGRADED")]
    rows += [(o.name, o.available, o.progressing, o.degraded) for o in report.operators]
    width = max(20, *(len(r[0]) + 1 for r in rows))
    return [f"{r[0]:<{width}} {r[1]:<10} {r[2]:<12} {r[3]}".rstrip() for r in rows]


def _items(result: Any) -> list[dict[str, Any]]:
    if isinstance(result, dict):
        return result.get("items") or []
    return []


def _operator_status(item: dict[str, Any]) -> OperatorStatus:
    status = OperatorStatus(name=(item.get("metadata") or {}).get("name", ""))
    for cond in (item.get("status") or {}).get("conditions") or []:
        match cond.get("type"):
            case "Available":
                status.available = cond.get("status", "")
            case "Progressing":
                status.progressing = cond.get("status", "")
            case "Degraded":
                status.degraded = cond.get("status", "")
    return status


def _describe(exc: Exception) -> str:
    # Detect kubernetes ApiException by class name to avoid import
    if type(exc).__name__ == "ApiException":
        return f"K8s API error ({exc.status}): {exc.reason}"
    return str(exc) or type(exc).__name__
