"""DigitalOcean API client that lists tagged droplets as candidate peers."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..config import TopologyConfig
from ..exceptions import DiscoveryError
from .models import PeerId, parse_droplets

logger = logging.getLogger(__name__)


class DigitalOceanClient:
    """Discovers cluster peers by listing the droplets that carry a tag."""

    def __init__(self, config: TopologyConfig):
        self._config = config
        self._base = config.api_base_url.rstrip("/")
        self._session = requests.Session()
        self._session.headers["Accept"] = "application/json"
        self._session.headers["Authorization"] = f"Bearer {config.token}"
        self._timeout = config.timeout

    def fetch(self) -> set[PeerId]:
        """Return the peers derived from every page of ``GET /droplets?tag_name=...``."""
        peers: set[PeerId] = set()
        url: str | None = f"{self._base}/droplets"
        params: dict[str, Any] | None = {"tag_name": self._config.tag_name, "per_page": self._config.per_page}

        for _ in range(self._config.max_pages):
            if url is None:
                break
            body = self._get(url, params)
            peers.update(parse_droplets(self._config.node_basename, body))
            url = _next_page(body)
            # the next-page link already carries the query string
            params = None
        else:
            if url is not None:
                logger.warning(
                    "Stopped following droplet pages after %d pages",
                    self._config.max_pages,
                    extra={"topology": self._config.name},
                )

        logger.debug(
            "Droplet discovery found %d peers", len(peers),
            extra={"topology": self._config.name, "candidates": len(peers)},
        )
        return peers

    def _get(self, url: str, params: dict[str, Any] | None) -> Any:
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.error(
                "Request to DigitalOcean API failed: %s", exc,
                extra={"topology": self._config.name},
            )
            raise DiscoveryError(f"Request failed: {exc}") from exc

        if resp.status_code != 200:
            logger.warning(
                "Cannot query DigitalOcean API (%d %s) headers=%s body=%s",
                resp.status_code, resp.reason, dict(resp.headers), resp.text,
                extra={"topology": self._config.name, "status_code": resp.status_code},
            )
            raise DiscoveryError(
                f"HTTP {resp.status_code} listing droplets tagged {self._config.tag_name!r}",
                status_code=resp.status_code,
                response_body=resp.text,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise DiscoveryError(f"Undecodable droplet listing: {exc}", status_code=200, response_body=resp.text) from exc


def _next_page(body: Any) -> str | None:
    """Extract ``links.pages.next`` from a listing response, if present."""
    if not isinstance(body, dict):
        return None
    links = body.get("links")
    pages = links.get("pages") if isinstance(links, dict) else None
    nxt = pages.get("next") if isinstance(pages, dict) else None
    return nxt if isinstance(nxt, str) and nxt else None
