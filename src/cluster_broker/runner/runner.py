"""HiveLoginRunner — the sequential connection/elevation diagnostic.

Lifecycle:
  1. Build the target connection from ambient credentials
  2. Resolve the target cluster from the user's identifier
  3. Discover the Hive cluster and its connection
  4. For each requested client check: build the client, validate it,
     close it. The Hive default-connection checks build their client in
     one call from the cluster ID, repeating the lookup and discovery.
  5. Close every connection opened along the way

Fail-fast: the first failing step ends the run and later steps are not
attempted. No step is retried. Every connection and client is registered
for cleanup the moment it exists, so each is closed exactly once on every
exit path, including cancellation.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cluster_broker.errors import BrokerError, HiveNotFoundError
from cluster_broker.kube.factory import ClientFactory
from cluster_broker.kube.validator import SessionValidator, format_operator_table
from cluster_broker.models import (
    ClientVariant,
    ClusterRecord,
    ClusterRole,
    ConnectionMode,
    HiveLink,
    RunResult,
    StepResult,
    StepStatus,
    ValidationReport,
)
from cluster_broker.ocm.builder import EnvironmentConnectionBuilder, FromEnvironment
from cluster_broker.ocm.connection import Connection
from cluster_broker.ocm.hive import HiveDiscovery
from cluster_broker.ocm.locator import ClusterLocator

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Testing cluster-broker clients with cluster admin"

Progress = Callable[[str], None]


@dataclass(frozen=True)
class ClientCheck:
    """One client variant to build and validate."""

    name: str
    role: ClusterRole
    variant: ClientVariant
    mode: ConnectionMode


ALL_CHECKS: tuple[ClientCheck, ...] = (
    ClientCheck("target-standard-default", ClusterRole.TARGET, ClientVariant.STANDARD, ConnectionMode.DEFAULT),
    ClientCheck("hive-standard-explicit", ClusterRole.HIVE, ClientVariant.STANDARD, ConnectionMode.EXPLICIT),
    ClientCheck("hive-elevated-explicit", ClusterRole.HIVE, ClientVariant.ELEVATED, ConnectionMode.EXPLICIT),
    ClientCheck("target-standard-explicit", ClusterRole.TARGET, ClientVariant.STANDARD, ConnectionMode.EXPLICIT),
    ClientCheck("target-elevated-default", ClusterRole.TARGET, ClientVariant.ELEVATED, ConnectionMode.DEFAULT),
    ClientCheck("target-elevated-explicit", ClusterRole.TARGET, ClientVariant.ELEVATED, ConnectionMode.EXPLICIT),
    ClientCheck("hive-standard-default", ClusterRole.HIVE, ClientVariant.STANDARD, ConnectionMode.DEFAULT),
    ClientCheck("hive-elevated-default", ClusterRole.HIVE, ClientVariant.ELEVATED, ConnectionMode.DEFAULT),
)

CHECKS_BY_NAME: dict[str, ClientCheck] = {c.name: c for c in ALL_CHECKS}


class _StepFailed(Exception):
    """Internal signal: a step failed and the run must stop."""


class HiveLoginRunner:
    """Runs the full resolution and client-validation sequence."""

    def __init__(
        self,
        builder: EnvironmentConnectionBuilder,
        *,
        locator: ClusterLocator | None = None,
        discovery: HiveDiscovery | None = None,
        factory: ClientFactory | None = None,
        validator: SessionValidator | None = None,
        progress: Progress | None = None,
    ) -> None:
        self._builder = builder
        self._locator = locator or ClusterLocator()
        self._discovery = discovery or HiveDiscovery(builder)
        self._factory = factory or ClientFactory(
            builder, locator=self._locator, discovery=self._discovery,
        )
        self._validator = validator or SessionValidator()
        self._progress = progress or (lambda line: logger.info("%s", line))

    def run(
        self,
        identifier: str,
        *,
        hive_file_path: str | Path | None = None,
        hive_url: str | None = None,
        reason: str = DEFAULT_REASON,
        checks: Sequence[ClientCheck] = ALL_CHECKS,
    ) -> RunResult:
        """Run every step in order and return the outcome.

        Never raises for broker failures; they are captured in the
        result's ``failed_step`` and ``error`` fields.
        """
        result = RunResult(
            success=False,
            identifier=identifier,
            started_at=datetime.now(tz=UTC),
        )
        try:
            with contextlib.ExitStack() as stack:
                self._run_steps(
                    stack, result, identifier, hive_file_path, hive_url, reason, checks,
                )
            result.success = True
            self._progress("All checks passed")
        except _StepFailed:
            pass
        result.finished_at = datetime.now(tz=UTC)
        return result

    # --- Private: sequence ---

    def _run_steps(
        self,
        stack: contextlib.ExitStack,
        result: RunResult,
        identifier: str,
        hive_file_path: str | Path | None,
        hive_url: str | None,
        reason: str,
        checks: Sequence[ClientCheck],
    ) -> None:
        with self._step(result, "connect") as step:
            self._progress("Building control-plane connection from environment...")
            conn = self._builder.build(FromEnvironment())
            stack.callback(conn.close)
            step.message = f"Connected to {conn.url}"

        with self._step(result, "resolve-cluster") as step:
            cluster = self._locator.locate(conn, identifier)
            result.cluster_id = cluster.internal_id
            if cluster.internal_id != identifier:
                self._progress(
                    f"Using internal ID '{cluster.internal_id}' for provided cluster '{identifier}'",
                )
            step.message = f"Fetched cluster '{cluster.internal_id}' ({cluster.display_name})"

        link: HiveLink | None = None
        if any(c.role == ClusterRole.HIVE for c in checks):
            with self._step(result, "discover-hive") as step:
                link = self._discovery.locate(
                    cluster, conn, hive_file_path=hive_file_path, hive_url=hive_url,
                )
                stack.callback(link.close)
                result.hive_cluster_id = link.hive.internal_id
                result.hive_source = link.source
                step.message = (
                    f"Got Hive cluster '{link.hive.internal_id}' ({link.hive.display_name}) "
                    f"via {link.source}"
                )

        for check in checks:
            with self._step(result, check.name) as step:
                report = self._run_check(
                    check, cluster, conn, link, reason, hive_file_path, hive_url,
                )
                step.report = report
                step.message = f"{check.name} - PASS"
                for line in format_operator_table(report):
                    logger.debug("%s", line)
                if report.namespace_count is not None:
                    self._progress(f"Got {report.namespace_count} namespaces")
                if report.elevated_check:
                    self._progress(f"Elevated check: {report.elevated_check}")

    def _run_check(
        self,
        check: ClientCheck,
        cluster: ClusterRecord,
        conn: Connection,
        link: HiveLink | None,
        reason: str,
        hive_file_path: str | Path | None,
        hive_url: str | None,
    ) -> ValidationReport:
        elevated = check.variant == ClientVariant.ELEVATED

        if check.role == ClusterRole.HIVE and check.mode == ConnectionMode.DEFAULT:
            self._progress(
                f"Attempting to create and test {check.variant} client "
                f"({check.mode}) for the hive cluster of '{cluster.internal_id}'...",
            )
            client = self._factory.new_hive_client(
                cluster.internal_id,
                reason if elevated else None,
                hive_url=hive_url,
                hive_file_path=hive_file_path,
            )
            with client:
                return self._validator.validate(client, managed_cluster=cluster)

        if check.role == ClusterRole.HIVE:
            if link is None:
                raise HiveNotFoundError(
                    "Hive cluster was not discovered before the Hive checks",
                    identifier=cluster.internal_id,
                )
            subject, subject_conn, managed = link.hive, link.connection, cluster
        else:
            subject, subject_conn, managed = cluster, conn, None

        explicit = subject_conn if check.mode == ConnectionMode.EXPLICIT else None
        self._progress(
            f"Attempting to create and test {check.variant} client "
            f"({check.mode}) for {check.role} cluster '{subject.internal_id}'...",
        )
        if elevated:
            client = self._factory.new_elevated_client(subject, explicit, reason)
        else:
            client = self._factory.new_standard_client(subject, explicit)

        with client:
            return self._validator.validate(client, managed_cluster=managed)

    @contextlib.contextmanager
    def _step(self, result: RunResult, name: str) -> Iterator[StepResult]:
        step = StepResult(step=name, status=StepStatus.PASSED)
        start = time.monotonic()
        try:
            self._builder.deadline.check(name)
            yield step
        except BrokerError as e:
            e.with_context(step=name)
            step.status = StepStatus.FAILED
            step.error = str(e)
            step.error_type = type(e).__name__
            step.duration_ms = (time.monotonic() - start) * 1000
            result.steps.append(step)
            result.failed_step = name
            result.error = str(e)
            self._progress(f"FAILED [{name}]: {e}")
            logger.debug("Step %s failed", name, exc_info=True)
            raise _StepFailed(name) from e
        step.duration_ms = (time.monotonic() - start) * 1000
        result.steps.append(step)
        if step.message:
            self._progress(step.message)
