"""Holds the set of peers this node currently treats as connected."""

from __future__ import annotations

import logging
from typing import Iterable

from ..discovery.models import PeerId

logger = logging.getLogger(__name__)


class MembershipStore:
    """Single owner of the known peer set; replaced wholesale, never patched."""

    def __init__(self) -> None:
        self._known: frozenset[PeerId] = frozenset()

    def current(self) -> frozenset[PeerId]:
        return self._known

    def replace(self, peers: Iterable[PeerId]) -> None:
        new = frozenset(peers)
        if new != self._known:
            logger.debug("Known peer set changed: %d -> %d peers", len(self._known), len(new))
        self._known = new

    def __len__(self) -> int:
        return len(self._known)

    def __contains__(self, peer: object) -> bool:
        return peer in self._known
