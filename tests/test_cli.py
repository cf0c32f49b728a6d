"""Tests for the cluster-broker CLI."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest
from click.testing import CliRunner
from conftest import BACKPLANE_URL, HIVE_OCM_URL, OCM_URL, TARGET_ID, TOKEN_URL

from cluster_broker.cli.main import cli
from cluster_broker.credentials.resolver import ENV_VARS
from cluster_broker.kube.validator import SessionValidator
from cluster_broker.models import (
    RunResult,
    StepResult,
    StepStatus,
    ValidationReport,
)
from cluster_broker.runner.runner import HiveLoginRunner


def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    """Isolate each test from the caller's environment and config files."""
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def fake_run(monkeypatch):
    """Replace HiveLoginRunner.run; records the call and returns a canned result."""
    calls: list[dict] = []
    outcome = {"success": True}

    def _run(self, identifier, **kwargs):
        calls.append({"identifier": identifier, **kwargs})
        steps = [StepResult(step="connect", status=StepStatus.PASSED)]
        if outcome["success"]:
            return RunResult(
                success=True, identifier=identifier, cluster_id=TARGET_ID,
                steps=steps, started_at=datetime.now(tz=UTC),
            )
        steps.append(StepResult(step="resolve-cluster", status=StepStatus.FAILED,
                                error="not found", error_type="ClusterNotFoundError"))
        return RunResult(
            success=False, identifier=identifier, steps=steps,
            failed_step="resolve-cluster", error="not found",
            started_at=datetime.now(tz=UTC),
        )

    monkeypatch.setattr(HiveLoginRunner, "run", _run)
    return calls, outcome


# --- config get ---


class TestConfigGet:
    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("BACKPLANE_URL", BACKPLANE_URL)
        result = runner().invoke(cli, ["config", "get", "backplane_url"])
        assert result.exit_code == 0
        assert f'"backplane_url": "{BACKPLANE_URL}"' in result.output
        assert "(source: environment)" in result.output

    def test_dashed_key(self, monkeypatch):
        monkeypatch.setenv("HIVE_OCM_URL", HIVE_OCM_URL)
        result = runner().invoke(cli, ["config", "get", "hive-ocm-url"])
        assert result.exit_code == 0
        assert HIVE_OCM_URL in result.output

    def test_from_config_file(self, tmp_path: Path):
        cfg = tmp_path / "cluster-broker.yaml"
        cfg.write_text(f"hive_ocm_url: {HIVE_OCM_URL}\n", encoding="utf-8")
        result = runner().invoke(cli, ["config", "get", "hive_ocm_url", "--config", str(cfg)])
        assert result.exit_code == 0
        assert "(source: config file)" in result.output

    def test_auto_discovered_config_file(self, tmp_path: Path):
        (tmp_path / "cluster-broker.yaml").write_text(
            f"backplane_url: {BACKPLANE_URL}\n", encoding="utf-8",
        )
        result = runner().invoke(cli, ["config", "get", "backplane_url"])
        assert result.exit_code == 0
        assert "(source: config file)" in result.output

    def test_default(self):
        result = runner().invoke(cli, ["config", "get", "token_url"])
        assert result.exit_code == 0
        assert "(source: default)" in result.output

    def test_secret_masked(self, monkeypatch):
        monkeypatch.setenv("OCM_TOKEN", "very-secret")
        result = runner().invoke(cli, ["config", "get", "access_token"])
        assert result.exit_code == 0
        assert "very-secret" not in result.output
        assert "****" in result.output

    def test_not_set(self):
        result = runner().invoke(cli, ["config", "get", "backplane_url"])
        assert result.exit_code == 1
        assert "NOT SET" in result.output

    def test_missing_explicit_config(self, tmp_path: Path):
        result = runner().invoke(
            cli, ["config", "get", "url", "--config", str(tmp_path / "nope.yaml")],
        )
        assert result.exit_code != 0


# --- config show ---


class TestConfigShow:
    def test_no_config_file(self):
        result = runner().invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "No config file found" in result.output
        assert "token_url" in result.output

    def test_json_output(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("OCM_URL", OCM_URL)
        monkeypatch.setenv("OCM_TOKEN", "secret")
        cfg = tmp_path / "cluster-broker.yaml"
        cfg.write_text(f"hive-ocm-url: {HIVE_OCM_URL}\n", encoding="utf-8")
        result = runner().invoke(cli, ["config", "show", "--json-output"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["url"] == {"value": OCM_URL, "source": "environment"}
        assert data["access_token"]["value"] == "****"
        assert data["hive_ocm_url"]["source"] == "config file"

    def test_unreadable_config_warns(self, tmp_path: Path):
        (tmp_path / "cluster-broker.yaml").write_text("- not\n- a mapping\n", encoding="utf-8")
        result = runner().invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "ignoring unreadable config file" in result.output


# --- hive-login ---


class TestHiveLogin:
    def test_success(self, fake_run):
        calls, _ = fake_run
        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID])
        assert result.exit_code == 0
        assert "All tests passed" in result.output
        assert calls[0]["identifier"] == TARGET_ID
        assert calls[0]["hive_url"] is None
        assert len(calls[0]["checks"]) == 8

    def test_failure_exit_code(self, fake_run):
        calls, outcome = fake_run
        outcome["success"] = False
        result = runner().invoke(cli, ["hive-login", "--cluster-id", "no-such"])
        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "resolve-cluster" in result.output

    def test_cluster_id_required(self, fake_run):
        result = runner().invoke(cli, ["hive-login"])
        assert result.exit_code == 2
        assert fake_run[0] == []

    def test_hive_url_from_flag(self, fake_run):
        calls, _ = fake_run
        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID, "--hive-ocm-url", HIVE_OCM_URL])
        assert "Using Hive OCM URL set in args" in result.output
        assert calls[0]["hive_url"] == HIVE_OCM_URL

    def test_hive_url_from_environment(self, fake_run, monkeypatch):
        calls, _ = fake_run
        monkeypatch.setenv("HIVE_OCM_URL", HIVE_OCM_URL)
        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID])
        assert "Got Hive OCM URL from settings" in result.output
        assert calls[0]["hive_url"] == HIVE_OCM_URL

    def test_hive_config_passed_through(self, fake_run, tmp_path: Path):
        calls, _ = fake_run
        hive_cfg = tmp_path / "hive.json"
        hive_cfg.write_text("{}", encoding="utf-8")
        runner().invoke(cli, ["hive-login", "-C", TARGET_ID, "--hive-ocm-config", str(hive_cfg)])
        assert calls[0]["hive_file_path"] == str(hive_cfg)

    def test_selected_checks(self, fake_run):
        calls, _ = fake_run
        runner().invoke(cli, [
            "hive-login", "-C", TARGET_ID,
            "--check", "target-standard-default", "--check", "hive-elevated-explicit",
        ])
        assert [c.name for c in calls[0]["checks"]] == [
            "target-standard-default", "hive-elevated-explicit",
        ]

    def test_unknown_check_rejected(self, fake_run):
        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID, "--check", "bogus"])
        assert result.exit_code == 2

    def test_reason_passed(self, fake_run):
        calls, _ = fake_run
        runner().invoke(cli, ["hive-login", "-C", TARGET_ID, "--reason", "OHSS-1234"])
        assert calls[0]["reason"] == "OHSS-1234"

    def test_json_output(self, fake_run):
        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID, "--json-output"])
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["cluster_id"] == TARGET_ID


class TestHiveLoginEndToEnd:
    """Full run through the CLI with HTTP served by the fake transport."""

    def test_all_checks_pass(self, monkeypatch, transport):
        monkeypatch.setenv("OCM_URL", OCM_URL)
        monkeypatch.setenv("OCM_TOKEN", "env-token")
        monkeypatch.setenv("OCM_TOKEN_URL", TOKEN_URL)
        monkeypatch.setenv("BACKPLANE_URL", BACKPLANE_URL)
        monkeypatch.setattr("cluster_broker.ocm.connection.UrllibTransport", lambda: transport)

        def _validate(self, client, managed_cluster=None):
            return ValidationReport(
                variant=client.variant, mode=client.mode, cluster_id=client.cluster.internal_id,
            )

        monkeypatch.setattr(SessionValidator, "validate", _validate)

        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID, "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["hive_source"] == "target-connection"
        assert len(data["steps"]) == 11

    def test_missing_environment(self):
        result = runner().invoke(cli, ["hive-login", "-C", TARGET_ID])
        assert result.exit_code == 1
        assert "step 'connect'" in result.output
