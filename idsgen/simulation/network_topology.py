"""
Network Topology Model for the IDS scenario generator.

Builds the multi-tier enterprise tree (core router, distribution and access
switches, DMZ, WiFi, VPN star) as a NetworkX graph plus an explicit link set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import networkx as nx

from ..errors import TopologyError


class Role(str, Enum):
    CORE_ROUTER = "core-router"
    DISTRIBUTION_SWITCH = "distribution-switch"
    ACCESS_SWITCH = "access-switch"
    ENTERPRISE_CLIENT = "enterprise-client"
    DMZ_SERVER = "dmz-server"
    VPN_SERVER = "vpn-server"
    REMOTE_CLIENT = "remote-client"
    WIFI_AP = "wifi-ap"
    WIFI_STATION = "wifi-station"


class LinkKind(str, Enum):
    POINT_TO_POINT = "point-to-point"
    SHARED_MEDIUM = "shared-medium"
    WIRELESS = "wireless"


# Link groups in address-allocation order
LINK_GROUPS = ("core", "enterprise", "dmz", "wifi", "vpn")

# Client populations used by the traffic generators
POPULATIONS: Dict[str, Role] = {
    "enterprise": Role.ENTERPRISE_CLIENT,
    "wifi": Role.WIFI_STATION,
    "remote": Role.REMOTE_CLIENT,
}

_ID_PREFIX = {
    Role.CORE_ROUTER: "CORE",
    Role.DISTRIBUTION_SWITCH: "DIST",
    Role.ACCESS_SWITCH: "ACC",
    Role.ENTERPRISE_CLIENT: "ENT",
    Role.DMZ_SERVER: "DMZ",
    Role.VPN_SERVER: "VPN",
    Role.REMOTE_CLIENT: "REM",
    Role.WIFI_AP: "AP",
    Role.WIFI_STATION: "STA",
}

_COLORS = {
    Role.CORE_ROUTER: (255, 0, 0),
    Role.DISTRIBUTION_SWITCH: (255, 165, 0),
    Role.ACCESS_SWITCH: (255, 215, 0),
    Role.ENTERPRISE_CLIENT: (128, 128, 128),
    Role.DMZ_SERVER: (128, 0, 128),
    Role.VPN_SERVER: (0, 128, 128),
    Role.REMOTE_CLIENT: (0, 255, 0),
    Role.WIFI_AP: (0, 191, 255),
    Role.WIFI_STATION: (0, 0, 255),
}


@dataclass
class Node:
    """A device in the scenario. Only the address planner mutates it."""

    node_id: str
    role: Role
    index: int
    label: str
    position: Tuple[float, float]
    link_ids: List[str] = field(default_factory=list)
    addresses: Dict[str, str] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(self.node_id)

    def assign_address(self, link_id: str, address: str) -> None:
        if link_id not in self.link_ids:
            raise TopologyError(f"{self.node_id} is not attached to link {link_id}")
        if link_id in self.addresses:
            raise TopologyError(f"{self.node_id} already has an address on {link_id}")
        self.addresses[link_id] = address

    @property
    def primary_address(self) -> str:
        """Address on the first attached link."""
        if not self.link_ids or self.link_ids[0] not in self.addresses:
            raise TopologyError(f"{self.node_id} has no address assigned")
        return self.addresses[self.link_ids[0]]

    def address_on(self, link_id: str) -> str:
        return self.addresses[link_id]


@dataclass(frozen=True)
class Link:
    """A point-to-point link or a shared segment between nodes."""

    link_id: str
    kind: LinkKind
    group: str
    members: Tuple[str, ...]
    data_rate: Optional[str] = None
    delay: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "link_id": self.link_id,
            "kind": self.kind.value,
            "group": self.group,
            "members": list(self.members),
            "data_rate": self.data_rate,
            "delay": self.delay,
        }


class NetworkTopology:
    """
    Tree-shaped model of the simulated enterprise network.

    Graph nodes are node ids; every graph edge carries the ``link_id`` of the
    link it belongs to, so a route between two nodes maps directly onto the
    links it crosses.
    """

    def __init__(
        self,
        core_routers: int = 1,
        distribution_switches: int = 2,
        access_switches: int = 1,
        enterprise_clients: int = 10,
        dmz_servers: int = 5,
        vpn_servers: int = 1,
        remote_clients: int = 10,
        wifi_access_points: int = 1,
        wifi_stations: int = 10,
    ) -> None:
        self.counts = {
            Role.CORE_ROUTER: core_routers,
            Role.DISTRIBUTION_SWITCH: distribution_switches,
            Role.ACCESS_SWITCH: access_switches,
            Role.ENTERPRISE_CLIENT: enterprise_clients,
            Role.DMZ_SERVER: dmz_servers,
            Role.VPN_SERVER: vpn_servers,
            Role.REMOTE_CLIENT: remote_clients,
            Role.WIFI_AP: wifi_access_points,
            Role.WIFI_STATION: wifi_stations,
        }
        self._validate_counts()

        self.graph = nx.Graph()
        self.nodes: Dict[str, Node] = {}
        self.links: Dict[str, Link] = {}

        self._build_topology()
        self._check_tree()

    # ── Public API ──────────────────────────────────────────────────

    def get_node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def get_link(self, link_id: str) -> Link:
        return self.links[link_id]

    def nodes_by_role(self, role: Role) -> List[Node]:
        return [n for n in self.nodes.values() if n.role == role]

    def population(self, name: str) -> List[Node]:
        return self.nodes_by_role(POPULATIONS[name])

    def links_in_group(self, group: str) -> List[Link]:
        return [l for l in self.links.values() if l.group == group]

    @property
    def core_router(self) -> Node:
        return self.nodes_by_role(Role.CORE_ROUTER)[0]

    @property
    def dmz_servers(self) -> List[Node]:
        return self.nodes_by_role(Role.DMZ_SERVER)

    @property
    def vpn_server(self) -> Optional[Node]:
        servers = self.nodes_by_role(Role.VPN_SERVER)
        return servers[0] if servers else None

    def path(self, src: str, dst: str) -> List[str]:
        """Node ids along the unique tree path from ``src`` to ``dst``."""
        return nx.shortest_path(self.graph, src, dst)

    def links_on_path(self, src: str, dst: str) -> List[str]:
        """Link ids crossed by the route from ``src`` to ``dst``, in order."""
        hops = self.path(src, dst)
        crossed: List[str] = []
        for a, b in zip(hops, hops[1:]):
            link_id = self.graph.edges[a, b]["link_id"]
            if not crossed or crossed[-1] != link_id:
                crossed.append(link_id)
        return crossed

    @property
    def num_nodes(self) -> int:
        return len(self.nodes)

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for n in self.nodes.values():
            counts[n.role.value] = counts.get(n.role.value, 0) + 1
        counts["total_links"] = len(self.links)
        return counts

    def to_visualization(self) -> Dict[str, Any]:
        """Node positions, labels and colors for human inspection."""
        nodes = []
        for node_id in self.graph.nodes:
            node = self.nodes[node_id]
            x, y = node.position
            nodes.append({
                "id": node_id,
                "role": node.role.value,
                "description": node.label,
                "x": x,
                "y": y,
                "color": list(_COLORS[node.role]),
                "addresses": dict(node.addresses),
            })
        edges = [
            {"source": a, "target": b, "link_id": data["link_id"], "kind": data["kind"]}
            for a, b, data in self.graph.edges(data=True)
        ]
        return {"nodes": nodes, "edges": edges, "links": [l.to_dict() for l in self.links.values()]}

    # ── Topology construction ───────────────────────────────────────

    def _validate_counts(self) -> None:
        c = self.counts
        for role, n in c.items():
            if n < 0:
                raise TopologyError(f"Population for {role.value} cannot be negative: {n}")
        if c[Role.CORE_ROUTER] != 1:
            raise TopologyError(
                f"Topology needs exactly one core router, got {c[Role.CORE_ROUTER]}"
            )
        if c[Role.DISTRIBUTION_SWITCH] == 0:
            raise TopologyError("Zero distribution switches leaves the topology disconnected")
        if c[Role.DMZ_SERVER] == 0:
            raise TopologyError("At least one DMZ server is required to host services")
        if c[Role.ENTERPRISE_CLIENT] and not c[Role.ACCESS_SWITCH]:
            raise TopologyError("Enterprise clients need at least one access switch")
        if c[Role.WIFI_STATION] and not c[Role.WIFI_AP]:
            raise TopologyError("WiFi stations need at least one access point")
        if c[Role.REMOTE_CLIENT] and not c[Role.VPN_SERVER]:
            raise TopologyError("Remote clients need a VPN server")
        if c[Role.VPN_SERVER] > 1:
            raise TopologyError(f"At most one VPN server is supported, got {c[Role.VPN_SERVER]}")

    def _create_node(self, role: Role, idx: int, label: str, x: float, y: float) -> Node:
        node_id = f"{_ID_PREFIX[role]}{idx:03d}"
        node = Node(node_id=node_id, role=role, index=idx, label=label, position=(x, y))
        self.nodes[node_id] = node
        self.graph.add_node(node_id, role=role.value)
        return node

    def _add_link(
        self,
        link_id: str,
        kind: LinkKind,
        group: str,
        members: List[Node],
        hub: Node,
        data_rate: Optional[str] = None,
        delay: Optional[str] = None,
    ) -> Link:
        """Register a link; graph edges run from each member to ``hub``."""
        link = Link(
            link_id=link_id,
            kind=kind,
            group=group,
            members=tuple(n.node_id for n in members),
            data_rate=data_rate,
            delay=delay,
        )
        self.links[link_id] = link
        for node in members:
            node.link_ids.append(link_id)
            if node is not hub:
                self.graph.add_edge(node.node_id, hub.node_id, link_id=link_id, kind=kind.value)
        return link

    def _build_topology(self) -> None:
        c = self.counts

        # ── Core and distribution tier ──────────────────────────────
        core = self._create_node(Role.CORE_ROUTER, 0, "Core Router", 50.0, 50.0)
        dists = [
            self._create_node(Role.DISTRIBUTION_SWITCH, i, f"Dist Switch {i}", 30.0 + 40.0 * i, 30.0)
            for i in range(c[Role.DISTRIBUTION_SWITCH])
        ]
        for i, dist in enumerate(dists):
            self._add_link(
                f"core-uplink-{i}", LinkKind.POINT_TO_POINT, "core",
                [core, dist], hub=core, data_rate="10Gbps", delay="2ms",
            )

        vpn = None
        if c[Role.VPN_SERVER]:
            vpn = self._create_node(Role.VPN_SERVER, 0, "VPN Server", 60.0, 80.0)
            self._add_link(
                "vpn-uplink", LinkKind.POINT_TO_POINT, "core",
                [vpn, core], hub=core, data_rate="500Mbps", delay="20ms",
            )

        # ── Enterprise LAN behind the access switches ──────────────
        access = [
            self._create_node(Role.ACCESS_SWITCH, i, f"Access Switch {i}", 15.0 + 10.0 * i, 35.0)
            for i in range(c[Role.ACCESS_SWITCH])
        ]
        clients = [
            self._create_node(Role.ENTERPRISE_CLIENT, i, f"Enterprise Client {i}", 20.0 + 10.0 * i, 20.0)
            for i in range(c[Role.ENTERPRISE_CLIENT])
        ]
        for k, sw in enumerate(access):
            members = clients[k::len(access)]
            if members:
                self._add_link(
                    f"enterprise-lan-{k}", LinkKind.SHARED_MEDIUM, "enterprise",
                    members + [sw], hub=sw, data_rate="500Mbps", delay="2ms",
                )
            self._add_link(
                f"access-uplink-{k}", LinkKind.SHARED_MEDIUM, "enterprise",
                [sw, dists[0]], hub=dists[0], data_rate="500Mbps", delay="2ms",
            )

        # ── DMZ segment ─────────────────────────────────────────────
        dmz_dist = dists[1] if len(dists) > 1 else dists[0]
        servers = [
            self._create_node(Role.DMZ_SERVER, i, f"DMZ Server {i}", 70.0 + 10.0 * i, 60.0)
            for i in range(c[Role.DMZ_SERVER])
        ]
        self._add_link(
            "dmz-lan", LinkKind.SHARED_MEDIUM, "dmz",
            servers + [dmz_dist], hub=dmz_dist, data_rate="1Gbps", delay="2ms",
        )

        # ── WiFi: AP uplinks, then one BSS per AP ──────────────────
        aps = [
            self._create_node(Role.WIFI_AP, i, f"Wi-Fi AP {i}", 10.0 + 10.0 * i, 25.0)
            for i in range(c[Role.WIFI_AP])
        ]
        stations = [
            self._create_node(Role.WIFI_STATION, i, f"Wi-Fi STA {i}", 20.0 + 10.0 * i, 10.0)
            for i in range(c[Role.WIFI_STATION])
        ]
        for k, ap in enumerate(aps):
            self._add_link(
                f"wifi-uplink-{k}", LinkKind.SHARED_MEDIUM, "wifi",
                [ap, dists[0]], hub=dists[0], data_rate="1Gbps", delay="2ms",
            )
        for k, ap in enumerate(aps):
            members = stations[k::len(aps)]
            if members:
                self._add_link(f"wifi-bss-{k}", LinkKind.WIRELESS, "wifi", [ap] + members, hub=ap)

        # ── VPN star: one dedicated link per remote client ─────────
        for i in range(c[Role.REMOTE_CLIENT]):
            remote = self._create_node(Role.REMOTE_CLIENT, i, f"Remote Client {i}", 60.0 + 10.0 * i, 90.0)
            self._add_link(
                f"vpn-tunnel-{i}", LinkKind.POINT_TO_POINT, "vpn",
                [vpn, remote], hub=vpn, data_rate="500Mbps", delay="20ms",
            )

    def _check_tree(self) -> None:
        if not nx.is_tree(self.graph):
            raise TopologyError("Topology is not a tree: some node has no unique path to the core")
