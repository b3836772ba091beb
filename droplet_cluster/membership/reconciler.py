"""Set-difference reconciliation between observed and known peers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Mapping

from ..connection import ConnectionManager
from ..discovery.models import PeerId

logger = logging.getLogger(__name__)


def diff(known: AbstractSet[PeerId], candidate: AbstractSet[PeerId]) -> tuple[frozenset[PeerId], frozenset[PeerId]]:
    """Return ``(to_add, to_remove)``; the two sets are always disjoint."""
    return frozenset(candidate - known), frozenset(known - candidate)


def apply_disconnect_result(
    proposed: AbstractSet[PeerId],
    removed: AbstractSet[PeerId],
    failures: Mapping[PeerId, object],
) -> frozenset[PeerId]:
    """Put back every removed peer whose disconnect failed; it is still connected."""
    still_connected = {peer for peer in failures if peer in removed}
    return frozenset(proposed) | still_connected


def apply_connect_result(
    proposed: AbstractSet[PeerId],
    added: AbstractSet[PeerId],
    failures: Mapping[PeerId, object],
) -> frozenset[PeerId]:
    """Drop every added peer whose connect failed; no connection exists."""
    never_connected = {peer for peer in failures if peer in added}
    return frozenset(proposed) - never_connected


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    known: frozenset[PeerId]
    added: frozenset[PeerId] = field(default_factory=frozenset)
    removed: frozenset[PeerId] = field(default_factory=frozenset)
    connect_failures: dict[PeerId, object] = field(default_factory=dict)
    disconnect_failures: dict[PeerId, object] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class Reconciler:
    """Drives the connection manager for the delta between two peer sets."""

    def __init__(self, manager: ConnectionManager, topology: str = ""):
        self._manager = manager
        self._topology = topology

    def reconcile(self, known: AbstractSet[PeerId], candidate: AbstractSet[PeerId]) -> ReconcileResult:
        """Disconnect stale peers, connect new ones, and return the corrected known set.

        Disconnects always run before connects. Empty batches never reach the
        connection manager.
        """
        candidate = frozenset(candidate)
        to_add, to_remove = diff(known, candidate)
        if not to_add and not to_remove:
            logger.debug("Nothing to reconcile", extra={"topology": self._topology})
            return ReconcileResult(known=frozenset(known))

        proposed = candidate

        disconnect_failures: dict[PeerId, object] = {}
        if to_remove:
            logger.info(
                "Disconnecting %d peers", len(to_remove),
                extra={"topology": self._topology, "removed": sorted(map(str, to_remove))},
            )
            disconnect_failures = self._only(self._call(self._manager.disconnect, to_remove), to_remove)
            proposed = apply_disconnect_result(proposed, to_remove, disconnect_failures)

        connect_failures: dict[PeerId, object] = {}
        if to_add:
            logger.info(
                "Connecting %d peers", len(to_add),
                extra={"topology": self._topology, "added": sorted(map(str, to_add))},
            )
            connect_failures = self._only(self._call(self._manager.connect, to_add), to_add)
            proposed = apply_connect_result(proposed, to_add, connect_failures)

        return ReconcileResult(
            known=proposed,
            added=to_add.difference(connect_failures),
            removed=to_remove.difference(disconnect_failures),
            connect_failures=connect_failures,
            disconnect_failures=disconnect_failures,
        )

    def _call(
        self,
        action: Callable[[list[PeerId]], Mapping[PeerId, object] | None],
        batch: AbstractSet[PeerId],
    ) -> Mapping[PeerId, object] | None:
        """Run one manager call; if it raises, the whole batch counts as failed."""
        try:
            return action(sorted(batch))
        except Exception as exc:
            logger.exception(
                "Connection manager %s raised, marking %d peers failed",
                getattr(action, "__name__", action), len(batch),
                extra={"topology": self._topology},
            )
            return {peer: exc for peer in batch}

    def _only(self, failures: Mapping[PeerId, object] | None, submitted: AbstractSet[PeerId]) -> dict[PeerId, object]:
        """Restrict a failure report to the peers that were actually submitted."""
        report = dict(failures or {})
        stray = [peer for peer in report if peer not in submitted]
        for peer in stray:
            logger.debug("Ignoring failure for unsubmitted peer %s", peer, extra={"topology": self._topology})
            del report[peer]
        for peer, reason in report.items():
            logger.warning("Peer %s failed: %s", peer, reason, extra={"topology": self._topology, "peer": str(peer)})
        return report
