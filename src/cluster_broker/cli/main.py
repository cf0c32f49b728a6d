"""cluster-broker CLI — command-line interface for the connection broker.

Commands:
    hive-login      Log into a target cluster and its Hive cluster, and
                    validate every client variant
    config get      Show one setting and the source it came from
    config show     Show every known setting with its source
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

import click

from cluster_broker import __version__
from cluster_broker.config import BrokerConfig, build_sources, load_config
from cluster_broker.credentials.resolver import CredentialSourceResolver
from cluster_broker.deadline import Deadline
from cluster_broker.errors import NotFoundError
from cluster_broker.kube.validator import format_operator_table
from cluster_broker.models import RunResult, StepStatus
from cluster_broker.ocm.builder import EnvironmentConnectionBuilder
from cluster_broker.runner.runner import (
    ALL_CHECKS,
    CHECKS_BY_NAME,
    DEFAULT_REASON,
    HiveLoginRunner,
)

_DIVIDER = "\n---------------------------------------------------------------\n"


def _resolve_cfg(path: str | None) -> BrokerConfig:
    """Load config from cluster-broker.yaml (auto-discover unless a path is given)."""
    if path is not None:
        return load_config(path)
    try:
        return load_config()
    except (OSError, ValueError) as exc:
        click.echo(f"Warning: ignoring unreadable config file: {exc}", err=True)
        return BrokerConfig()


def _resolver(path: str | None, overrides: dict[str, Any] | None = None) -> CredentialSourceResolver:
    return CredentialSourceResolver(build_sources(_resolve_cfg(path), overrides))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """cluster-broker: connection and privilege-elevation broker for managed clusters."""


# --- hive-login command ---


@cli.command("hive-login")
@click.option("--cluster-id", "-C", required=True, help="Cluster internal ID, external ID or name")
@click.option(
    "--hive-ocm-config", default=None,
    help="OCM config file for Hive if different than the cluster's",
)
@click.option(
    "--hive-ocm-url", default=None,
    help="OCM URL for Hive if different than the cluster's",
)
@click.option("--reason", default=DEFAULT_REASON, help="Elevation reason for admin clients")
@click.option(
    "--check", "check_names", multiple=True,
    type=click.Choice([c.name for c in ALL_CHECKS]),
    help="Client check to run (repeatable, default: all)",
)
@click.option("--timeout", type=float, default=None, help="Overall deadline in seconds")
@click.option("--config", "config_path", default=None, help="Path to cluster-broker.yaml")
@click.option("--verbose", is_flag=True, help="Verbose output")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def hive_login(
    cluster_id: str,
    hive_ocm_config: str | None,
    hive_ocm_url: str | None,
    reason: str,
    check_names: tuple[str, ...],
    timeout: float | None,
    config_path: str | None,
    verbose: bool,
    json_output: bool,
) -> None:
    """Test login into both the target cluster and its Hive cluster.

    Builds standard and cluster-admin clients against each, and checks
    every one of them with a live API read. Exits non-zero on the first
    failure.
    """
    _configure_logging(verbose)
    resolver = _resolver(config_path)

    def progress(line: str) -> None:
        if not json_output:
            click.echo(line)

    if hive_ocm_url:
        progress(f"Using Hive OCM URL set in args: '{hive_ocm_url}'")
    else:
        hive_ocm_url = resolver.get("hive_ocm_url")
        if hive_ocm_url:
            progress(f"Got Hive OCM URL from settings: '{hive_ocm_url}'")
        elif not hive_ocm_config:
            progress("No separate Hive OCM URL set, using the target cluster's connection.")
    hive_ocm_config = hive_ocm_config or resolver.get("hive_ocm_config")

    builder = EnvironmentConnectionBuilder(resolver, deadline=Deadline(timeout))
    runner = HiveLoginRunner(builder, progress=progress)
    checks = [CHECKS_BY_NAME[n] for n in check_names] or list(ALL_CHECKS)

    result = runner.run(
        cluster_id,
        hive_file_path=hive_ocm_config,
        hive_url=hive_ocm_url,
        reason=reason,
        checks=checks,
    )

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_summary(result, verbose)

    if not result.success:
        sys.exit(1)


def _print_summary(result: RunResult, verbose: bool) -> None:
    click.echo(_DIVIDER)
    for step in result.steps:
        if step.status == StepStatus.PASSED:
            badge = click.style("PASS", fg="green", bold=True)
        else:
            badge = click.style("FAIL", fg="red", bold=True)
        click.echo(f"  {badge}  {step.step}")
        if verbose and step.report is not None:
            for line in format_operator_table(step.report):
                click.echo(f"        {line}")
    click.echo("")
    if result.success:
        click.echo(click.style("All tests passed", fg="green", bold=True))
    else:
        click.echo(
            click.style("FAILED", fg="red", bold=True)
            + f" at step '{result.failed_step}': {result.error}",
            err=True,
        )


# --- config group ---


@cli.group()
def config() -> None:
    """Inspect broker settings and where they come from."""


@config.command("get")
@click.argument("key")
@click.option("--config", "config_path", default=None, help="Path to cluster-broker.yaml")
def config_get(key: str, config_path: str | None) -> None:
    """Show the value of KEY and its source."""
    resolver = _resolver(config_path)
    try:
        resolved = resolver.resolve(key.replace("-", "_"))
    except NotFoundError as exc:
        click.echo(click.style("NOT SET", fg="red", bold=True) + f": {exc}", err=True)
        sys.exit(1)
    click.echo(
        click.style(f'"{resolved.key}": "{resolved.display_value}"', fg="green")
        + f" (source: {resolved.source})",
    )


@config.command("show")
@click.option("--config", "config_path", default=None, help="Path to cluster-broker.yaml")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def config_show(config_path: str | None, json_output: bool) -> None:
    """Show every known setting with its source."""
    resolver = _resolver(config_path)
    values = resolver.describe()

    if json_output:
        data = {
            v.key: {"value": v.display_value, "source": str(v.source)} for v in values
        }
        click.echo(json.dumps(data, indent=2))
        return

    path = resolver.sources.config_path
    if path is not None:
        click.echo("Using config file: " + click.style(f"'{path}'", fg="green"))
    else:
        click.echo("No config file found")
    click.echo("")
    if not values:
        click.echo("No settings.")
        return
    for v in values:
        click.echo(
            click.style(f"{v.key}: {v.display_value}", fg="green")
            + f" (source: {v.source})",
        )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
