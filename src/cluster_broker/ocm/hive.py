"""Companion management (Hive) cluster discovery.

The connection used to look up the Hive cluster is chosen by an ordered
list of strategies, first applicable wins:

1. ``hive-ocm-config``: an explicit config file for the Hive environment
2. ``hive-ocm-url``: the ambient credentials pointed at another URL
3. ``target-connection``: the target's own connection, unchanged

The target's provision shard (read on the target connection, which owns
the target's record) names the Hive API server; the chosen connection is
then searched for the cluster serving that API URL.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from cluster_broker.errors import BrokerError, HiveNotFoundError, InvalidConfigError
from cluster_broker.models import ClusterRecord, HiveLink
from cluster_broker.ocm.builder import (
    EnvironmentConnectionBuilder,
    FromConfigWithOverride,
    FromEnvironment,
    FromFile,
)
from cluster_broker.ocm.connection import Connection
from cluster_broker.ocm.locator import CLUSTERS_PATH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HiveRequest:
    """Inputs to Hive discovery."""

    target: ClusterRecord
    target_connection: Connection
    hive_file_path: str | Path | None = None
    hive_url: str | None = None


@dataclass(frozen=True)
class HiveConnectionStrategy:
    """One way of obtaining the Hive connection.

    ``applies`` decides whether the strategy is usable for a request;
    ``connect`` returns the connection and whether the caller owns it.
    """

    name: str
    applies: Callable[[HiveRequest], bool]
    connect: Callable[[HiveRequest], tuple[Connection, bool]]


class HiveDiscovery:
    """Finds the management cluster for a target cluster."""

    def __init__(self, builder: EnvironmentConnectionBuilder) -> None:
        self._builder = builder
        self.strategies: list[HiveConnectionStrategy] = [
            HiveConnectionStrategy(
                name="hive-ocm-config",
                applies=lambda req: bool(req.hive_file_path),
                connect=self._connect_from_file,
            ),
            HiveConnectionStrategy(
                name="hive-ocm-url",
                applies=lambda req: bool(req.hive_url),
                connect=self._connect_with_url,
            ),
            HiveConnectionStrategy(
                name="target-connection",
                applies=lambda req: True,
                connect=lambda req: (req.target_connection, False),
            ),
        ]

    def select(self, request: HiveRequest) -> HiveConnectionStrategy:
        """Return the first strategy that applies to *request*."""
        for strategy in self.strategies:
            if strategy.applies(request):
                return strategy
        raise HiveNotFoundError(
            "No strategy available for the Hive connection",
            identifier=request.target.internal_id,
        )

    def locate(
        self,
        target: ClusterRecord,
        target_connection: Connection,
        hive_file_path: str | Path | None = None,
        hive_url: str | None = None,
    ) -> HiveLink:
        """Resolve the Hive cluster and a connection to its environment.

        The returned link owns its connection only when one was opened
        here; the caller must then ``link.close()`` it.

        Raises:
            InvalidConfigError: If no target connection is given.
            HiveNotFoundError: If the target has no provision shard or no
                cluster in the chosen environment serves it.
        """
        _require_connection(target, target_connection)
        request = HiveRequest(
            target=target,
            target_connection=target_connection,
            hive_file_path=hive_file_path,
            hive_url=hive_url,
        )
        strategy = self.select(request)
        if strategy.name == "hive-ocm-config" and hive_url:
            logger.warning(
                "Hive config file given; ignoring Hive URL override %s", hive_url,
            )
        logger.debug("Hive connection strategy: %s", strategy.name)

        hive_conn, owned = strategy.connect(request)
        try:
            hive = self._find_hive_cluster(target, target_connection, hive_conn)
        except BaseException as e:
            if owned:
                hive_conn.close()
            if isinstance(e, BrokerError):
                e.with_context(identifier=target.internal_id)
            raise

        return HiveLink(
            target=target,
            hive=hive,
            connection=hive_conn,
            owns_connection=owned,
            source=strategy.name,
        )

    # --- Private: strategies ---

    def _connect_from_file(self, request: HiveRequest) -> tuple[Connection, bool]:
        if not request.hive_file_path:
            raise InvalidConfigError("No Hive config file path given")
        return self._builder.build(FromFile(request.hive_file_path)), True

    def _connect_with_url(self, request: HiveRequest) -> tuple[Connection, bool]:
        if not request.hive_url:
            raise InvalidConfigError("No Hive OCM URL given")
        ambient = self._builder.endpoint_for(FromEnvironment())
        return self._builder.build(FromConfigWithOverride(ambient, request.hive_url)), True

    # --- Private: lookup ---

    def _find_hive_cluster(
        self,
        target: ClusterRecord,
        target_connection: Connection,
        hive_connection: Connection,
    ) -> ClusterRecord:
        shard_url = get_hive_shard(target, target_connection)

        page = hive_connection.get(
            CLUSTERS_PATH, {"search": f"api.url = '{shard_url}'", "size": 2},
        ) or {}
        items = page.get("items") or []
        if not items:
            raise HiveNotFoundError(
                f"No Hive cluster with API URL '{shard_url}' found at "
                f"{hive_connection.url} for cluster '{target.internal_id}'",
            )
        if len(items) > 1:
            raise HiveNotFoundError(
                f"Multiple Hive clusters serve API URL '{shard_url}' at "
                f"{hive_connection.url}",
            )
        return ClusterRecord.from_api(items[0])


def get_hive_shard(target: ClusterRecord, connection: Connection) -> str:
    """API server URL of the Hive shard that provisioned *target*."""
    _require_connection(target, connection)
    shard = connection.get(
        f"{CLUSTERS_PATH}/{target.internal_id}/provision_shard",
        allow_missing=True,
    )
    server = ((shard or {}).get("hive_config") or {}).get("server")
    if not server:
        raise HiveNotFoundError(
            f"Cluster '{target.internal_id}' has no Hive provision shard",
        )
    return server


def _require_connection(target: ClusterRecord, connection: Connection | None) -> None:
    if connection is None:
        raise InvalidConfigError(
            f"No control-plane connection given for cluster '{target.internal_id}'",
            identifier=target.internal_id,
        )
