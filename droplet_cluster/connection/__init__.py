"""Connection management package: manager Protocol and failure report type."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..discovery.models import PeerId

# Maps each peer that could not be acted upon to the reason it failed.
# An empty report means every submitted peer succeeded.
FailureReport = dict["PeerId", Any]


@runtime_checkable
class ConnectionManager(Protocol):
    """Protocol that every connection manager must satisfy."""

    def connect(self, peers: Iterable[PeerId]) -> FailureReport:
        ...

    def disconnect(self, peers: Iterable[PeerId]) -> FailureReport:
        ...
