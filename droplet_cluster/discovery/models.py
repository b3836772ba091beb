"""Peer identifiers and typed views over DigitalOcean droplet payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import total_ordering
from typing import Any


@total_ordering
@dataclass(frozen=True, eq=False)
class PeerId:
    """Names one cluster member as ``<basename>@<address>``.

    Equality, hashing and ordering use the string form only.
    """

    value: str

    @classmethod
    def of(cls, basename: str, address: str) -> PeerId:
        return cls(f"{basename}@{address}")

    @property
    def basename(self) -> str:
        return self.value.rpartition("@")[0]

    @property
    def address(self) -> str:
        return self.value.rpartition("@")[2]

    def __str__(self) -> str:
        return self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PeerId):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other: PeerId) -> bool:
        if not isinstance(other, PeerId):
            return NotImplemented
        return self.value < other.value

    def __hash__(self) -> int:
        return hash(self.value)


@dataclass(frozen=True)
class Network:
    """One entry of a droplet's ``networks.v4`` list."""

    ip_address: str | None = None
    type: str | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> Network:
        # keeps its place in the list so only the real first entry can match
        if not isinstance(raw, dict):
            return cls()
        ip_address = raw.get("ip_address")
        net_type = raw.get("type")
        return cls(
            ip_address=ip_address if isinstance(ip_address, str) else None,
            type=net_type if isinstance(net_type, str) else None,
        )


@dataclass(frozen=True)
class Droplet:
    """A droplet descriptor as returned by ``GET /droplets``; every field is optional."""

    id: int | None = None
    name: str | None = None
    v4_networks: tuple[Network, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, raw: Any) -> Droplet | None:
        if not isinstance(raw, dict):
            return None
        networks = raw.get("networks")
        v4 = networks.get("v4") if isinstance(networks, dict) else None
        parsed = tuple(map(Network.from_payload, v4 if isinstance(v4, list) else []))
        droplet_id = raw.get("id")
        name = raw.get("name")
        return cls(
            id=droplet_id if isinstance(droplet_id, int) and not isinstance(droplet_id, bool) else None,
            name=name if isinstance(name, str) else None,
            v4_networks=parsed,
        )

    @property
    def public_ipv4(self) -> str | None:
        """The address of the first IPv4 network, provided it is public."""
        if not self.v4_networks:
            return None
        first = self.v4_networks[0]
        if first.type != "public" or not first.ip_address:
            return None
        return first.ip_address

    def peer_id(self, basename: str) -> PeerId | None:
        address = self.public_ipv4
        if address is None:
            return None
        return PeerId.of(basename, address)


def parse_droplets(basename: str, payload: Any) -> list[PeerId]:
    """Turn a ``/droplets`` response body into peer ids.

    Droplets that do not match the single-public-IPv4 shape are dropped.
    """
    if not isinstance(payload, dict):
        return []
    droplets = payload.get("droplets")
    if not isinstance(droplets, list):
        return []

    peers: list[PeerId] = []
    for raw in droplets:
        droplet = Droplet.from_payload(raw)
        if droplet is None:
            continue
        peer = droplet.peer_id(basename)
        if peer is not None:
            peers.append(peer)
    return peers
