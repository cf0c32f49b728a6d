"""KubeClient — a Kubernetes API client bound to one cluster and connection.

Wraps a ``kubernetes.client.ApiClient`` together with the cluster record
and control-plane connection it was built from. A client is never shared
or cached. Closing it drops any elevation headers and closes every
connection it owns: the default-connection variants own theirs, and a
Hive client built in one call also owns the target connection it used
for discovery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from cluster_broker.errors import ConnectionClosedError
from cluster_broker.models import (
    ClientVariant,
    ClusterRecord,
    ConnectionMode,
    ElevationRequest,
)
from cluster_broker.ocm.connection import Connection

logger = logging.getLogger(__name__)


@dataclass
class KubeClient:
    """A standard or elevated client for one cluster."""

    variant: ClientVariant
    mode: ConnectionMode
    cluster: ClusterRecord
    connection: Connection
    api_client: Any
    elevation: ElevationRequest | None = None
    owns_connection: bool = False
    extra_connections: list[Connection] = field(default_factory=list)
    _closed: bool = field(default=False, init=False, repr=False)

    def __enter__(self) -> KubeClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def label(self) -> str:
        """Short description used in progress output and errors."""
        return f"{self.variant}/{self.mode}"

    @property
    def closed(self) -> bool:
        return self._closed

    def api(self, api_class_name: str) -> Any:
        """Instantiate a kubernetes API class (e.g. ``CoreV1Api``)."""
        from kubernetes import client

        self._ensure_usable()
        api_cls = getattr(client, api_class_name)
        return api_cls(self.api_client)

    def request_timeout(self) -> float:
        """Per-call timeout from the connection's deadline."""
        return self.connection.deadline.call_timeout()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.elevation is not None:
            for header in self.elevation.headers():
                self.api_client.default_headers.pop(header, None)
        close = getattr(self.api_client, "close", None)
        if close is not None:
            close()
        if self.owns_connection:
            self.connection.close()
        for conn in self.extra_connections:
            conn.close()
        logger.debug("Closed %s client for cluster %s", self.label, self.cluster.internal_id)

    def _ensure_usable(self) -> None:
        if self._closed:
            raise ConnectionClosedError(
                f"{self.label} client for {self.cluster.internal_id} is closed",
                variant=self.label,
            )
        if self.connection.closed:
            raise ConnectionClosedError(
                f"Connection behind {self.label} client for "
                f"{self.cluster.internal_id} is closed",
                variant=self.label,
            )
