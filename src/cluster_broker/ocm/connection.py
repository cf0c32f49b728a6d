"""Authenticated session against one control-plane endpoint.

A ``Connection`` is bound to exactly one ``Endpoint``. It obtains an
access token once, at ``authenticate()``, and then issues JSON requests
with it. Whoever builds a connection owns it and must ``close()`` it.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
from typing import Any

import jwt

from cluster_broker.deadline import Deadline
from cluster_broker.errors import (
    AuthenticationError,
    ConnectionClosedError,
    NetworkError,
    ResolutionError,
)
from cluster_broker.models import Endpoint
from cluster_broker.ocm.transport import HttpResponse, Transport, TransportError, UrllibTransport

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "cloud-services"

# Tokens closer than this to expiry are treated as expired.
_EXPIRY_SKEW = 30


class Connection:
    """A live, authenticated control-plane session."""

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        transport: Transport | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._transport = transport or UrllibTransport()
        self._deadline = deadline or Deadline()
        self._access_token: str | None = None
        self._closed = False

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Connection(url={self._endpoint.url!r}, {state})"

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def url(self) -> str:
        return self._endpoint.url

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def deadline(self) -> Deadline:
        return self._deadline

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def authenticated(self) -> bool:
        return self._access_token is not None

    def token(self) -> str:
        """The bearer token for this session."""
        self._ensure_open()
        if self._access_token is None:
            raise AuthenticationError(
                f"Connection to {self.url} is not authenticated",
            )
        return self._access_token

    def authenticate(self) -> None:
        """Obtain an access token from the endpoint's credentials.

        Order: a still-valid access token, then a refresh token, then
        client credentials.

        Raises:
            AuthenticationError: If the token endpoint rejects the
                credentials or none are usable.
            NetworkError: If the token endpoint cannot be reached.
        """
        self._ensure_open()
        ep = self._endpoint

        if ep.access_token and not _token_expired(ep.access_token):
            self._access_token = ep.access_token
            return

        if ep.refresh_token:
            form = {
                "grant_type": "refresh_token",
                "client_id": ep.client_id or DEFAULT_CLIENT_ID,
                "refresh_token": ep.refresh_token,
            }
            if ep.client_secret:
                form["client_secret"] = ep.client_secret
        elif ep.has_client_credentials:
            form = {
                "grant_type": "client_credentials",
                "client_id": ep.client_id,
                "client_secret": ep.client_secret,
            }
        elif ep.access_token:
            raise AuthenticationError(
                f"Access token for {ep.url} has expired and no refresh "
                f"token or client credentials are available",
            )
        else:
            raise AuthenticationError(f"No usable credentials for {ep.url}")

        logger.debug("Exchanging %s grant at %s", form["grant_type"], ep.token_url)
        resp = self._send(
            "POST",
            ep.token_url,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            data=urllib.parse.urlencode(form).encode("utf-8"),
        )
        if not resp.ok:
            raise AuthenticationError(
                f"Token exchange with {ep.token_url} failed "
                f"(HTTP {resp.status}): {resp.error_detail()}",
            )
        try:
            token = resp.json().get("access_token")
        except (ValueError, AttributeError) as e:
            raise AuthenticationError(
                f"Token endpoint {ep.token_url} returned an unreadable response",
            ) from e
        if not token:
            raise AuthenticationError(
                f"Token endpoint {ep.token_url} returned no access token",
            )
        self._access_token = token

    def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        allow_missing: bool = False,
    ) -> Any:
        """GET *path* on the endpoint and return decoded JSON.

        Returns ``None`` for a 404 when *allow_missing* is set.
        """
        url = self._url_for(path, params)
        return self._json_call("GET", url, allow_missing=allow_missing)

    def post(self, path: str, body: dict[str, Any] | None = None) -> Any:
        url = self._url_for(path, None)
        data = json.dumps(body or {}).encode("utf-8")
        return self._json_call("POST", url, data=data)

    def close(self) -> None:
        """Release the session. Later calls on this connection fail."""
        if self._closed:
            logger.debug("Connection to %s already closed", self.url)
            return
        self._closed = True
        self._access_token = None
        logger.debug("Closed connection to %s", self.url)

    # --- Private ---

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError(f"Connection to {self.url} is closed")

    def _url_for(self, path: str, params: dict[str, Any] | None) -> str:
        url = self.url.rstrip("/") + "/" + path.lstrip("/")
        if params:
            url += "?" + urllib.parse.urlencode(params)
        return url

    def _json_call(
        self,
        method: str,
        url: str,
        *,
        data: bytes | None = None,
        allow_missing: bool = False,
    ) -> Any:
        headers = {
            "Authorization": f"Bearer {self.token()}",
            "Accept": "application/json",
        }
        if data is not None:
            headers["Content-Type"] = "application/json"
        resp = self._send(method, url, headers=headers, data=data)

        if resp.status in (401, 403):
            raise AuthenticationError(
                f"Control plane rejected credentials (HTTP {resp.status}): "
                f"{resp.error_detail()}",
            )
        if resp.status == 404 and allow_missing:
            return None
        if resp.status >= 500:
            raise NetworkError(
                f"Control plane error (HTTP {resp.status}) for {url}: "
                f"{resp.error_detail()}",
            )
        if not resp.ok:
            raise ResolutionError(
                f"Control plane request {method} {url} failed "
                f"(HTTP {resp.status}): {resp.error_detail()}",
            )
        try:
            return resp.json()
        except ValueError as e:
            raise NetworkError(f"Unreadable response from {url}") from e

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        data: bytes | None = None,
    ) -> HttpResponse:
        timeout = self._deadline.call_timeout()
        try:
            return self._transport.request(
                method, url, headers=headers, data=data, timeout=timeout,
            )
        except TransportError as e:
            raise NetworkError(str(e)) from e


def _token_expired(token: str) -> bool:
    """True if *token* is a JWT whose ``exp`` has passed.

    Opaque (non-JWT) tokens are never considered expired here.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return False
    exp = claims.get("exp")
    if exp is None:
        return False
    return float(exp) <= time.time() + _EXPIRY_SKEW
