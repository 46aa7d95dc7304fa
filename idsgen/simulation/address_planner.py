"""
Address planning for the scenario topology.

One subnet per link, carved from a single IPv4 pool with a monotonic cursor:
each subnet is aligned on its own size and starts after the previous one, so
no two subnets can overlap.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..errors import AddressSpaceExhaustedError, ConfigurationError
from .network_topology import Link, NetworkTopology

logger = logging.getLogger(__name__)

# Link-id prefixes in allocation order
_TRAVERSAL = (
    "core-uplink",
    "vpn-uplink",
    "enterprise-lan",
    "access-uplink",
    "dmz-lan",
    "wifi-uplink",
    "wifi-bss",
    "vpn-tunnel",
)


def prefix_for_hosts(hosts: int) -> int:
    """Smallest prefix whose usable host range holds ``hosts`` addresses (at most /30)."""
    prefix = 30
    while prefix > 0 and (2 ** (32 - prefix)) - 2 < hosts:
        prefix -= 1
    return prefix


@dataclass(frozen=True)
class Subnet:
    link_id: str
    network: ipaddress.IPv4Network
    assignments: Tuple[Tuple[str, str], ...]

    def __contains__(self, address: str) -> bool:
        return ipaddress.ip_address(address) in self.network

    def overlaps(self, other: "Subnet") -> bool:
        return self.network.overlaps(other.network)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "link_id": self.link_id,
            "network": str(self.network),
            "assignments": {node_id: addr for node_id, addr in self.assignments},
        }


class AddressPlanner:
    """
    Assigns a subnet to every link of a topology.

    Args:
        base: First address of the pool.
        pool_prefix: Prefix length of the pool.
        spare_hosts: Extra host slots reserved on every subnet.
    """

    def __init__(self, base: str = "10.1.0.0", pool_prefix: int = 16, spare_hosts: int = 0) -> None:
        try:
            self.pool = ipaddress.ip_network(f"{base}/{pool_prefix}")
        except ValueError as exc:
            raise ConfigurationError(f"Invalid address pool {base}/{pool_prefix}: {exc}") from exc
        if spare_hosts < 0:
            raise ConfigurationError(f"spare_hosts cannot be negative: {spare_hosts}")
        self.spare_hosts = spare_hosts
        self.subnets: List[Subnet] = []
        self._by_link: Dict[str, Subnet] = {}
        self._cursor = int(self.pool.network_address)

    # ── Public API ──────────────────────────────────────────────────

    def plan(self, topology: NetworkTopology) -> List[Subnet]:
        """Allocate subnets and write addresses onto the topology's nodes."""
        if self.subnets:
            raise ConfigurationError("Address plan already computed")
        for link in self._traversal(topology):
            self._allocate(link, topology)
        logger.info(
            "Address plan complete",
            extra={"subnets": len(self.subnets), "pool": str(self.pool)},
        )
        return list(self.subnets)

    def subnet_of(self, address: str) -> Subnet:
        """The single subnet containing ``address``."""
        ip = ipaddress.ip_address(address)
        matches = [s for s in self.subnets if ip in s.network]
        if len(matches) != 1:
            raise KeyError(f"{address} is in {len(matches)} subnets")
        return matches[0]

    def subnet_for_link(self, link_id: str) -> Subnet:
        return self._by_link[link_id]

    def to_dict(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.subnets]

    # ── Internal helpers ────────────────────────────────────────────

    @staticmethod
    def _traversal(topology: NetworkTopology) -> List[Link]:
        ordered: List[Link] = []
        for prefix in _TRAVERSAL:
            ordered.extend(
                l for l in topology.links.values()
                if l.link_id == prefix or l.link_id.startswith(prefix + "-")
            )
        return ordered

    def _allocate(self, link: Link, topology: NetworkTopology) -> Subnet:
        prefix = prefix_for_hosts(len(link.members) + self.spare_hosts)
        size = 2 ** (32 - prefix)
        start = -(-self._cursor // size) * size  # align up
        end = start + size - 1
        if end > int(self.pool.broadcast_address):
            raise AddressSpaceExhaustedError(
                f"Pool {self.pool} cannot hold a /{prefix} for {link.link_id}"
            )

        network = ipaddress.ip_network(f"{ipaddress.ip_address(start)}/{prefix}")
        hosts = network.hosts()
        assignments = []
        for node_id in link.members:
            addr = str(next(hosts))
            topology.get_node(node_id).assign_address(link.link_id, addr)
            assignments.append((node_id, addr))

        subnet = Subnet(link_id=link.link_id, network=network, assignments=tuple(assignments))
        self.subnets.append(subnet)
        self._by_link[link.link_id] = subnet
        self._cursor = end + 1
        return subnet
