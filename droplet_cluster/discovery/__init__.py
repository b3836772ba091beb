"""Peer discovery package: provider Protocol and public exports."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import PeerId


@runtime_checkable
class DiscoveryProvider(Protocol):
    """Protocol that every discovery provider must satisfy.

    Expected failures (transport, authorization, non-200 responses) are raised
    as ``DiscoveryError``; a response that names no usable peers is an empty set.
    """

    def fetch(self) -> set[PeerId]:
        """Return the current candidate peers."""
        ...
