"""Cluster identifier classification and lookup.

A user-supplied identifier is classified once, by shape, into exactly one
of three kinds. The lookup then issues a single control-plane search that
matches clusters in any lifecycle state, so installing, hibernating and
uninstalling clusters are found as well as ready ones.
"""

from __future__ import annotations

import logging
import re
from typing import assert_never

from cluster_broker.errors import (
    AmbiguousClusterError,
    ClusterNotFoundError,
    ValidationError,
)
from cluster_broker.models import ClusterIdentifierQuery, ClusterRecord, IdentifierKind
from cluster_broker.ocm.connection import Connection

logger = logging.getLogger(__name__)

CLUSTERS_PATH = "/api/clusters_mgmt/v1/clusters"

_INTERNAL_ID = re.compile(r"[0-9a-z]{32}")
_EXTERNAL_ID = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)

# Upper bound on candidates fetched for a display-name search.
_SEARCH_PAGE_SIZE = 20


def classify(identifier: str) -> ClusterIdentifierQuery:
    """Classify *identifier* by shape. First match wins.

    1. 32 lowercase alphanumerics: internal ID
    2. RFC 4122 UUID: external ID
    3. anything else: display-name substring
    """
    if _INTERNAL_ID.fullmatch(identifier):
        kind = IdentifierKind.INTERNAL_ID
    elif _EXTERNAL_ID.fullmatch(identifier):
        kind = IdentifierKind.EXTERNAL_ID
    else:
        kind = IdentifierKind.DISPLAY_NAME
    return ClusterIdentifierQuery(kind=kind, value=identifier)


def build_search(query: ClusterIdentifierQuery) -> str:
    """Render the control-plane search expression for *query*."""
    value = query.value.replace("'", "''")
    match query.kind:
        case IdentifierKind.INTERNAL_ID:
            return f"id = '{value}'"
        case IdentifierKind.EXTERNAL_ID:
            return f"external_id = '{value}'"
        case IdentifierKind.DISPLAY_NAME:
            return f"display_name like '%{value}%'"
        case _:
            assert_never(query.kind)


class ClusterLocator:
    """Resolves user-supplied identifiers to cluster records."""

    def locate(self, connection: Connection, identifier: str) -> ClusterRecord:
        """Find the one cluster matching *identifier*.

        Raises:
            ValidationError: If *identifier* is empty.
            ClusterNotFoundError: If nothing matches.
            AmbiguousClusterError: If more than one cluster matches.
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValidationError("Cluster identifier must not be empty")

        query = classify(identifier)
        search = build_search(query)
        logger.debug("Searching clusters (%s): %s", query.kind, search)

        page = connection.get(
            CLUSTERS_PATH, {"search": search, "size": _SEARCH_PAGE_SIZE},
        ) or {}
        items = page.get("items") or []
        total = int(page.get("total", len(items)))

        if not items:
            raise ClusterNotFoundError(
                f"No cluster found matching {_describe(query)}",
                identifier=identifier,
            )
        if len(items) > 1 or total > 1:
            candidates = [
                f"{item.get('id')} ({item.get('display_name') or item.get('name', '')})"
                for item in items
            ]
            raise AmbiguousClusterError(
                f"{max(total, len(items))} clusters match {_describe(query)}: "
                f"{', '.join(candidates)}",
                identifier=identifier,
                candidates=candidates,
            )

        record = ClusterRecord.from_api(items[0])
        logger.debug(
            "Resolved '%s' to cluster %s (state=%s)",
            identifier, record.internal_id, record.state,
        )
        return record


def _describe(query: ClusterIdentifierQuery) -> str:
    match query.kind:
        case IdentifierKind.INTERNAL_ID:
            return f"internal ID '{query.value}'"
        case IdentifierKind.EXTERNAL_ID:
            return f"external ID '{query.value}'"
        case IdentifierKind.DISPLAY_NAME:
            return f"display name containing '{query.value}'"
        case _:
            assert_never(query.kind)
