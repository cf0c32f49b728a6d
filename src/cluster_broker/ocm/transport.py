"""HTTP transport used for control-plane and backplane calls.

Uses stdlib ``urllib.request`` — no extra dependencies required. Any
object with a matching ``request()`` method satisfies the protocol, which
is how tests substitute canned responses.
"""

from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a request never produced an HTTP response."""


@dataclass
class HttpResponse:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        if not self.body:
            return {}
        return json.loads(self.body.decode("utf-8"))

    def error_detail(self) -> str:
        """Best-effort human-readable reason from an error body."""
        try:
            data = self.json()
        except ValueError:
            return self.body[:200].decode("utf-8", errors="replace")
        if isinstance(data, dict):
            for key in ("reason", "error_description", "message", "error"):
                if data.get(key):
                    return str(data[key])
        return f"HTTP {self.status}"


@runtime_checkable
class Transport(Protocol):
    """Protocol for HTTP transports."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
        timeout: float,
    ) -> HttpResponse:
        """Perform one request.

        Returns the response for any HTTP status, including errors.

        Raises:
            TransportError: If no response was received (DNS, refused,
                timeout, TLS failure).
        """
        ...


class UrllibTransport:
    """Transport backed by ``urllib.request``."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
        timeout: float,
    ) -> HttpResponse:
        req = urllib.request.Request(
            url, data=data, headers=headers or {}, method=method,
        )
        logger.debug("%s %s", method, url)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return HttpResponse(
                    status=resp.status,
                    body=resp.read(),
                    headers=dict(resp.headers.items()),
                )
        except urllib.error.HTTPError as e:
            return HttpResponse(
                status=e.code,
                body=e.read() or b"",
                headers=dict(e.headers.items()) if e.headers else {},
            )
        except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as e:
            reason = getattr(e, "reason", e)
            raise TransportError(f"{method} {url} failed: {reason}") from e
