"""Core data models for the connection broker.

Defines the schemas for:
- Endpoints (static description of one control-plane deployment)
- Cluster records and identifier queries (what the control plane knows)
- Hive links (a target cluster paired with its management cluster)
- Elevation requests (reason-scoped administrative identity)
- Validation reports and run results (what the broker observed)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from cluster_broker.ocm.connection import Connection

DEFAULT_OCM_URL = "https://api.openshift.com"
DEFAULT_TOKEN_URL = (
    "https://sso.redhat.com/auth/realms/redhat-external/protocol/openid-connect/token"
)

# --- Enums ---


class ConfigSource(enum.StrEnum):
    EXPLICIT_OVERRIDE = "explicit"
    ENVIRONMENT_VARIABLE = "environment"
    CONFIG_FILE = "config file"
    DEFAULT = "default"


class IdentifierKind(enum.StrEnum):
    INTERNAL_ID = "internal_id"
    EXTERNAL_ID = "external_id"
    DISPLAY_NAME = "display_name"


class ClientVariant(enum.StrEnum):
    STANDARD = "standard"
    ELEVATED = "elevated"


class ConnectionMode(enum.StrEnum):
    DEFAULT = "default-connection"
    EXPLICIT = "explicit-connection"


class ClusterRole(enum.StrEnum):
    TARGET = "target"
    HIVE = "hive"


class StepStatus(enum.StrEnum):
    PASSED = "passed"
    FAILED = "failed"


# --- Endpoint ---


class Endpoint(BaseModel):
    """URL plus credentials for one control-plane deployment.

    Immutable. Accepts both the camelCase spelling (``accessToken``,
    ``clientID``) and the snake_case spelling used by ``ocm.json``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    url: str = DEFAULT_OCM_URL
    access_token: str = Field(
        default="", validation_alias=AliasChoices("access_token", "accessToken"),
    )
    refresh_token: str = Field(
        default="", validation_alias=AliasChoices("refresh_token", "refreshToken"),
    )
    client_id: str = Field(
        default="", validation_alias=AliasChoices("client_id", "clientID", "clientId"),
    )
    client_secret: str = Field(
        default="",
        validation_alias=AliasChoices("client_secret", "clientSecret"),
    )
    token_url: str = Field(
        default=DEFAULT_TOKEN_URL,
        validation_alias=AliasChoices("token_url", "tokenURL", "tokenUrl"),
    )

    def with_url(self, url: str) -> Endpoint:
        """Return a copy of this endpoint pointing at *url*."""
        return self.model_copy(update={"url": url})

    @property
    def has_bearer_token(self) -> bool:
        return bool(self.access_token or self.refresh_token)

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def __repr__(self) -> str:
        return f"Endpoint(url={self.url!r})"


# --- Cluster records ---


class ClusterRecord(BaseModel):
    """A cluster as known by the control plane."""

    model_config = ConfigDict(frozen=True)

    internal_id: str
    external_id: str = ""
    display_name: str = ""
    state: str = ""
    api_url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ClusterRecord:
        """Build a record from a clusters_mgmt cluster object."""
        return cls(
            internal_id=data["id"],
            external_id=data.get("external_id") or "",
            display_name=data.get("display_name") or data.get("name") or "",
            state=data.get("state") or "",
            api_url=(data.get("api") or {}).get("url") or "",
        )


class ClusterIdentifierQuery(BaseModel):
    """A classified cluster identifier. Build with ``classify()``."""

    model_config = ConfigDict(frozen=True)

    kind: IdentifierKind
    value: str


# --- Hive link ---


@dataclass
class HiveLink:
    """A target cluster paired with its management (Hive) cluster.

    ``owns_connection`` is True when the hive connection was opened only
    for discovery and must be closed by whoever holds this link.
    """

    target: ClusterRecord
    hive: ClusterRecord
    connection: Connection
    owns_connection: bool = False
    source: str = ""

    def close(self) -> None:
        """Close the hive connection if this link owns it."""
        if self.owns_connection:
            self.connection.close()


# --- Elevation ---


class ElevationRequest(BaseModel):
    """A reason-scoped request for an administrative identity.

    Lives only as long as the client it was created for.
    """

    model_config = ConfigDict(frozen=True)

    reason: str = Field(min_length=1)
    target_cluster: str
    impersonate_user: str = "backplane-cluster-admin"

    def headers(self) -> dict[str, str]:
        return {
            "Impersonate-User": self.impersonate_user,
            "Impersonate-Extra-Reason": self.reason,
        }


# --- Validation ---


class OperatorStatus(BaseModel):
    """Condition summary of one cluster operator."""

    name: str
    available: str = ""
    progressing: str = ""
    degraded: str = ""


class ValidationReport(BaseModel):
    """What the session validator observed for one client."""

    variant: ClientVariant
    mode: ConnectionMode
    cluster_id: str
    operators: list[OperatorStatus] = Field(default_factory=list)
    namespace_count: int | None = None
    elevated_check: str | None = None


# --- Run results ---


class StepResult(BaseModel):
    """Outcome of one step of a sequential run."""

    step: str
    status: StepStatus
    message: str = ""
    error: str | None = None
    error_type: str | None = None
    duration_ms: float | None = None
    report: ValidationReport | None = None


class RunResult(BaseModel):
    """Outcome of a full hive-login run."""

    success: bool
    identifier: str
    cluster_id: str | None = None
    hive_cluster_id: str | None = None
    hive_source: str | None = None
    steps: list[StepResult] = Field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None
    started_at: datetime
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
