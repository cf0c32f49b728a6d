"""Shared fixtures: a fake control plane, backplane and token endpoint.

All HTTP goes through ``FakeTransport`` — no network is touched. The fake
control plane understands the search expressions the locator and Hive
discovery send, so tests exercise the real query strings.
"""

from __future__ import annotations

import json
import re
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from cluster_broker.config import build_sources
from cluster_broker.credentials.resolver import CredentialSourceResolver
from cluster_broker.deadline import Deadline
from cluster_broker.ocm.builder import EnvironmentConnectionBuilder
from cluster_broker.ocm.connection import Connection
from cluster_broker.ocm.transport import HttpResponse, TransportError

OCM_URL = "https://api.stage.example.com"
HIVE_OCM_URL = "https://api.hive-env.example.com"
BACKPLANE_URL = "https://backplane.example.com"
TOKEN_URL = "https://sso.example.com/token"

TARGET_ID = "261kalm3uob0vegg1c7h9o7r5k9t64ji"
TARGET_EXTERNAL_ID = "c1f562af-fb22-42c5-aa07-6848e1eeee9c"
TARGET_NAME = "hs-mc-773jpgko0"
HIVE_ID = "2a7m1hivecluster0000000000000abc"
HIVE_API = "https://api.hive-01.example.com:6443"


def json_response(data: Any, status: int = 200) -> HttpResponse:
    return HttpResponse(status=status, body=json.dumps(data).encode("utf-8"))


@dataclass
class Request:
    method: str
    url: str
    headers: dict[str, str]
    data: bytes | None
    timeout: float

    @property
    def path(self) -> str:
        return urllib.parse.urlsplit(self.url).path

    @property
    def query(self) -> dict[str, str]:
        return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(self.url).query))


Handler = Callable[[Request], HttpResponse]


class FakeTransport:
    """Routes requests to handlers by URL prefix and records them."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[Request] = []

    def mount(self, prefix: str, handler: Handler) -> None:
        self.routes[prefix] = handler

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
        timeout: float,
    ) -> HttpResponse:
        req = Request(method, url, dict(headers or {}), data, timeout)
        self.requests.append(req)
        for prefix in sorted(self.routes, key=len, reverse=True):
            if url.startswith(prefix):
                return self.routes[prefix](req)
        raise TransportError(f"{method} {url} failed: connection refused")

    def to(self, prefix: str) -> list[Request]:
        return [r for r in self.requests if r.url.startswith(prefix)]


_SEARCH = re.compile(r"^(id|external_id|display_name|api\.url) (=|like) '(.*)'$")


@dataclass
class FakeControlPlane:
    """An in-memory clusters_mgmt API for one environment."""

    clusters: list[dict[str, Any]] = field(default_factory=list)
    shards: dict[str, str] = field(default_factory=dict)
    accepted_tokens: set[str] | None = None

    def __call__(self, req: Request) -> HttpResponse:
        token = req.headers.get("Authorization", "").removeprefix("Bearer ")
        if self.accepted_tokens is not None and token not in self.accepted_tokens:
            return json_response({"reason": "invalid token"}, 401)

        path = req.path
        base = "/api/clusters_mgmt/v1/clusters"
        if path == base and req.method == "GET":
            items = self._search(req.query.get("search", ""))
            return json_response({"items": items, "total": len(items)})
        if path.startswith(base + "/") and path.endswith("/provision_shard"):
            cluster_id = path[len(base) + 1:].split("/")[0]
            server = self.shards.get(cluster_id)
            if server is None:
                return json_response({"reason": "not found"}, 404)
            return json_response({"hive_config": {"server": server}})
        return json_response({"reason": "not found"}, 404)

    def _search(self, expr: str) -> list[dict[str, Any]]:
        m = _SEARCH.match(expr)
        if m is None:
            return []
        fieldname, op, raw = m.groups()
        value = raw.replace("''", "'")
        results = []
        for c in self.clusters:
            if fieldname == "api.url":
                actual = (c.get("api") or {}).get("url", "")
            else:
                actual = c.get(fieldname, "")
            if op == "=" and actual == value:
                results.append(c)
            elif op == "like" and value.strip("%") in actual:
                results.append(c)
        return results


@dataclass
class FakeBackplane:
    fail_status: int | None = None
    logins: list[str] = field(default_factory=list)

    def __call__(self, req: Request) -> HttpResponse:
        cluster_id = req.path.rsplit("/", 1)[-1]
        self.logins.append(cluster_id)
        if self.fail_status is not None:
            return json_response({"message": "login refused"}, self.fail_status)
        return json_response({"proxy_uri": f"/backplane/cluster/{cluster_id}/"})


def token_endpoint(req: Request) -> HttpResponse:
    form = dict(urllib.parse.parse_qsl((req.data or b"").decode("utf-8")))
    if form.get("client_secret") == "wrong" or form.get("refresh_token") == "revoked":
        return json_response({"error": "invalid_grant"}, 400)
    return json_response({"access_token": f"exchanged-{form.get('grant_type')}"})


class RecordingConnection(Connection):
    """Connection that records every instance and every close call."""

    instances: list[RecordingConnection] = []

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.close_calls = 0
        RecordingConnection.instances.append(self)

    def close(self) -> None:
        self.close_calls += 1
        super().close()


def target_cluster(**overrides: Any) -> dict[str, Any]:
    data = {
        "id": TARGET_ID,
        "external_id": TARGET_EXTERNAL_ID,
        "display_name": TARGET_NAME,
        "state": "ready",
        "api": {"url": "https://api.hs-mc-773jpgko0.example.com:6443"},
    }
    data.update(overrides)
    return data


def hive_cluster() -> dict[str, Any]:
    return {
        "id": HIVE_ID,
        "external_id": "7d1c0a33-9e43-4c83-9a8b-1d2f3e4f5a6b",
        "display_name": "hive-01",
        "state": "ready",
        "api": {"url": HIVE_API},
    }


# --- Fixtures ---


@pytest.fixture()
def env() -> dict[str, str]:
    return {
        "OCM_URL": OCM_URL,
        "OCM_TOKEN": "env-token",
        "OCM_TOKEN_URL": TOKEN_URL,
        "BACKPLANE_URL": BACKPLANE_URL,
    }


@pytest.fixture()
def resolver(env: dict[str, str]) -> CredentialSourceResolver:
    return CredentialSourceResolver(build_sources(environ=env))


@pytest.fixture()
def control_plane() -> FakeControlPlane:
    return FakeControlPlane(
        clusters=[target_cluster(), hive_cluster()],
        shards={TARGET_ID: HIVE_API},
    )


@pytest.fixture()
def hive_control_plane() -> FakeControlPlane:
    return FakeControlPlane(clusters=[hive_cluster()])


@pytest.fixture()
def backplane() -> FakeBackplane:
    return FakeBackplane()


@pytest.fixture()
def transport(
    control_plane: FakeControlPlane,
    hive_control_plane: FakeControlPlane,
    backplane: FakeBackplane,
) -> FakeTransport:
    t = FakeTransport()
    t.mount(OCM_URL, control_plane)
    t.mount(HIVE_OCM_URL, hive_control_plane)
    t.mount(BACKPLANE_URL, backplane)
    t.mount(TOKEN_URL, token_endpoint)
    return t


@pytest.fixture()
def recorded() -> list[RecordingConnection]:
    RecordingConnection.instances = []
    return RecordingConnection.instances


@pytest.fixture()
def builder(
    resolver: CredentialSourceResolver,
    transport: FakeTransport,
    recorded: list[RecordingConnection],
) -> EnvironmentConnectionBuilder:
    return EnvironmentConnectionBuilder(
        resolver,
        transport=transport,
        deadline=Deadline(),
        connection_factory=RecordingConnection,
    )


@pytest.fixture()
def write_ocm_config(tmp_path):
    """Write an ocm.json-style file and return its path."""

    def _write(data: dict[str, Any] | str, name: str = "ocm.json") -> str:
        path = tmp_path / name
        text = data if isinstance(data, str) else json.dumps(data)
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write
