"""
Service Registry: which service label listens on which host, port and window.

Generators never hard-code endpoint addresses; they resolve a label such as
``HTTP`` or ``CNC`` through the registry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ConfigurationError, UnresolvedServiceError
from .network_topology import NetworkTopology

logger = logging.getLogger(__name__)


class Transport(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"


# label -> (DMZ host index, port, transport)
SERVICE_CATALOG: Dict[str, Tuple[int, int, Transport]] = {
    "HTTP": (0, 80, Transport.TCP),
    "HTTPS": (0, 443, Transport.TCP),
    "STREAMING": (0, 554, Transport.UDP),
    "SMTP": (1, 25, Transport.TCP),
    "IMAP": (1, 143, Transport.TCP),
    "POP3": (1, 110, Transport.TCP),
    "DNS": (2, 53, Transport.UDP),
    "FTP": (3, 21, Transport.TCP),
    "SSH": (3, 22, Transport.TCP),
    "UDP-ECHO": (4, 9, Transport.UDP),
}

VPN_SERVICE = ("VPN", 443, Transport.TCP)

# Operator-defined listeners used only by attack archetypes
CNC_HOST_INDEX = 4
ROGUE_HOST_INDEX = 1


@dataclass(frozen=True)
class ServiceBinding:
    label: str
    node_id: str
    address: str
    port: int
    transport: Transport
    start: float
    stop: float

    @property
    def endpoint(self) -> Tuple[str, int]:
        return self.address, self.port

    def covers(self, start: float, stop: float) -> bool:
        """True if the service is listening for the whole ``[start, stop]``."""
        return self.start <= start and stop <= self.stop

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "node_id": self.node_id,
            "address": self.address,
            "port": self.port,
            "transport": self.transport.value,
            "window": [self.start, self.stop],
        }


class ServiceRegistry:
    """
    Binds the service catalog to an addressed topology.

    Args:
        topology: Topology whose addresses are already planned.
        horizon: Scenario horizon in seconds.
        service_start: When the legitimate services start listening.
        cnc_port: Port of the command-and-control listener.
        rogue_port: Port of the MITM rogue listener.
        cnc_window: Active window of the C&C listener (whole horizon if None).
        rogue_window: Active window of the rogue listener (whole horizon if None).
    """

    def __init__(
        self,
        topology: NetworkTopology,
        horizon: float,
        service_start: float = 1.0,
        cnc_port: int = 9999,
        rogue_port: int = 8081,
        cnc_window: Optional[Tuple[float, float]] = None,
        rogue_window: Optional[Tuple[float, float]] = None,
    ) -> None:
        if not 0 <= service_start < horizon:
            raise ConfigurationError(
                f"service_start {service_start} must lie in [0, {horizon})"
            )
        self.topology = topology
        self.horizon = float(horizon)
        self._bindings: Dict[str, ServiceBinding] = {}

        servers = topology.dmz_servers
        for label, (host_idx, port, transport) in SERVICE_CATALOG.items():
            host = servers[host_idx % len(servers)]
            self._bind(label, host.node_id, port, transport, service_start, self.horizon)

        vpn = topology.vpn_server
        if vpn is not None:
            label, port, transport = VPN_SERVICE
            self._bind(label, vpn.node_id, port, transport, service_start, self.horizon)

        cnc_host = servers[CNC_HOST_INDEX % len(servers)]
        start, stop = self._window(cnc_window, "CNC")
        self._bind("CNC", cnc_host.node_id, cnc_port, Transport.TCP, start, stop)

        rogue_host = servers[ROGUE_HOST_INDEX % len(servers)]
        start, stop = self._window(rogue_window, "HTTP-ROGUE")
        self._bind("HTTP-ROGUE", rogue_host.node_id, rogue_port, Transport.TCP, start, stop)

        logger.info("Service registry built", extra={"services": len(self._bindings)})

    # ── Public API ──────────────────────────────────────────────────

    def get(self, label: str) -> ServiceBinding:
        try:
            return self._bindings[label]
        except KeyError:
            raise UnresolvedServiceError(f"No service registered under label {label!r}") from None

    def resolve(self, label: str) -> Tuple[str, int]:
        return self.get(label).endpoint

    def __contains__(self, label: str) -> bool:
        return label in self._bindings

    @property
    def labels(self) -> List[str]:
        return list(self._bindings)

    def bindings(self) -> List[ServiceBinding]:
        return list(self._bindings.values())

    def to_dict(self) -> List[Dict[str, Any]]:
        return [b.to_dict() for b in self._bindings.values()]

    # ── Internal helpers ────────────────────────────────────────────

    def _bind(
        self, label: str, node_id: str, port: int, transport: Transport, start: float, stop: float
    ) -> None:
        node = self.topology.get_node(node_id)
        self._bindings[label] = ServiceBinding(
            label=label,
            node_id=node_id,
            address=node.primary_address,
            port=port,
            transport=transport,
            start=float(start),
            stop=float(stop),
        )

    def _window(self, window: Optional[Tuple[float, float]], label: str) -> Tuple[float, float]:
        if window is None:
            return 0.0, self.horizon
        start, stop = float(window[0]), float(window[1])
        if not 0 <= start < stop <= self.horizon:
            raise ConfigurationError(
                f"{label} window [{start}, {stop}] must lie inside [0, {self.horizon}]"
            )
        return start, stop
