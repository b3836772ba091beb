"""REST client for the local node agent that owns the transport connections."""

from __future__ import annotations

import logging
from typing import Any, Iterable
from urllib.parse import quote

import requests

from ..config import ConnectionConfig
from ..discovery.models import PeerId
from ..exceptions import ConnectionManagerError
from . import FailureReport

logger = logging.getLogger(__name__)


class AgentClient:
    """Connects and disconnects peers through the node agent's ``/peers`` API.

    Every peer not present in a returned FailureReport was acted upon successfully.
    """

    def __init__(self, config: ConnectionConfig):
        self._base = config.base_url.rstrip("/")
        self._session = requests.Session()
        if config.username:
            self._session.auth = (config.username, config.password)
        self._session.headers["Content-Type"] = "application/json"
        self._session.verify = config.verify_ssl
        self._timeout = config.timeout
        self._self_name = config.self_name

    # ── Peer listing ────────────────────────────────────────────────

    def list_connected(self) -> set[PeerId]:
        """Return the peers the agent currently holds connections to."""
        resp = self._request("GET", "/peers")
        try:
            body = resp.json()
        except ValueError as exc:
            raise ConnectionManagerError(
                f"Undecodable peer listing: {exc}", status_code=resp.status_code, response_body=resp.text,
            ) from exc

        names = body.get("data") if isinstance(body, dict) else None
        if not isinstance(names, list) or not all(isinstance(name, str) for name in names):
            raise ConnectionManagerError(
                "Peer listing must be a mapping with a 'data' list of peer names",
                status_code=resp.status_code,
                response_body=resp.text,
            )
        return {PeerId(name) for name in names}

    # ── Connection manager contract ─────────────────────────────────

    def connect(self, peers: Iterable[PeerId]) -> FailureReport:
        peers = list(peers)
        if not peers:
            return {}

        try:
            connected = self.list_connected()
        except ConnectionManagerError as exc:
            logger.error("Cannot list connected peers before connecting: %s", exc)
            return {peer: str(exc) for peer in peers}

        failures: FailureReport = {}
        for peer in peers:
            if peer in connected or str(peer) == self._self_name:
                continue
            try:
                self._request("PUT", self._peer_path(peer))
            except ConnectionManagerError as exc:
                failures[peer] = str(exc)
            else:
                logger.info("Connected to %s", peer, extra={"peer": str(peer)})

        if failures:
            logger.warning("Unable to connect to %d peers", len(failures), extra={"failed": _names(failures)})
        return failures

    def disconnect(self, peers: Iterable[PeerId]) -> FailureReport:
        peers = list(peers)
        if not peers:
            return {}

        try:
            connected = self.list_connected()
        except ConnectionManagerError as exc:
            logger.error("Cannot list connected peers before disconnecting: %s", exc)
            return {peer: str(exc) for peer in peers}

        failures: FailureReport = {}
        for peer in peers:
            if peer not in connected:
                continue
            try:
                self._request("DELETE", self._peer_path(peer))
            except ConnectionManagerError as exc:
                failures[peer] = str(exc)
            else:
                logger.info("Disconnected from %s", peer, extra={"peer": str(peer)})

        if failures:
            logger.warning("Unable to disconnect from %d peers", len(failures), extra={"failed": _names(failures)})
        return failures

    # ── Internal HTTP helpers ───────────────────────────────────────

    @staticmethod
    def _peer_path(peer: PeerId) -> str:
        return f"/peers/{quote(str(peer), safe='@')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self._base}{path}"
        kwargs.setdefault("timeout", self._timeout)
        logger.debug("%s %s", method, path)

        try:
            resp = self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise ConnectionManagerError(f"Request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ConnectionManagerError(
                f"HTTP {resp.status_code} on {method} {path}: {resp.text}",
                status_code=resp.status_code,
                response_body=resp.text,
            )

        return resp


def _names(failures: FailureReport) -> list[str]:
    return sorted(str(peer) for peer in failures)
