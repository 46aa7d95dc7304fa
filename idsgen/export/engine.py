"""
Simulation engine interface.

The orchestrator only ever talks to a ``SimulationEngine``; packet transmission,
routing and capture are the engine's business. ``DryRunEngine`` records every
call, replays flow start/stop events through a discrete-event queue and writes
a FlowMonitor-format statistics file, so a scenario can be inspected without a
packet-level simulator.
"""

from __future__ import annotations

import heapq
import json
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from itertools import count
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..simulation.network_topology import Link, Node
from ..simulation.service_registry import ServiceBinding, Transport
from ..simulation.traffic_generator import FlowDescriptor

logger = logging.getLogger(__name__)

IP_PROTOCOLS = {Transport.TCP: 6, Transport.UDP: 17, Transport.ICMP: 1}

EPHEMERAL_PORT_BASE = 49153


def to_ns(seconds: float) -> str:
    """Engine time attribute format, e.g. ``+60000000000.0ns``."""
    return f"+{seconds * 1e9:.1f}ns"


class SimulationEngine(ABC):
    """Operations the scenario core needs from a packet-level simulator."""

    @abstractmethod
    def create_node(self, node: Node) -> None: ...

    @abstractmethod
    def create_link(self, link: Link) -> None: ...

    @abstractmethod
    def assign_address(self, node_id: str, link_id: str, address: str, network: str) -> None: ...

    @abstractmethod
    def install_service(self, binding: ServiceBinding) -> None: ...

    @abstractmethod
    def install_flow(self, flow: FlowDescriptor) -> None: ...

    @abstractmethod
    def enable_capture(self, name: str, node_id: str, link_id: str, promiscuous: bool = True) -> str:
        """Request a packet capture; returns the artifact name the engine will write."""

    @abstractmethod
    def enable_flow_monitor(self) -> None: ...

    @abstractmethod
    def populate_routing(self) -> None: ...

    @abstractmethod
    def run(self, until: float) -> None: ...

    @abstractmethod
    def serialize_flow_monitor(self, path: Union[str, Path]) -> Path: ...

    @abstractmethod
    def destroy(self) -> None: ...


class DryRunEngine(SimulationEngine):
    """
    Recording engine backed by a (time, sequence) event heap.

    Args:
        output_dir: Where ``engine-schedule.json`` is written by ``run``.
    """

    SCHEDULE_FILE = "engine-schedule.json"

    def __init__(self, output_dir: Optional[Union[str, Path]] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir else None
        self.nodes: Dict[str, Node] = {}
        self.links: Dict[str, Link] = {}
        self.addresses: List[Tuple[str, str, str, str]] = []
        self.services: Dict[str, ServiceBinding] = {}
        self.flows: Dict[str, FlowDescriptor] = {}
        self.captures: List[Dict[str, Any]] = []
        self.flow_monitor = False
        self.routing_ready = False
        self.now = 0.0
        self.executed: List[Dict[str, Any]] = []

        self._events: List[Tuple[float, int, str, str]] = []
        self._seq = count()
        self._first_tx: Dict[str, float] = {}
        self._source_ports: Dict[str, int] = {}
        self._flow_ports: Dict[str, int] = {}

    # ── Construction ────────────────────────────────────────────────

    def create_node(self, node: Node) -> None:
        self.nodes[node.node_id] = node

    def create_link(self, link: Link) -> None:
        missing = [m for m in link.members if m not in self.nodes]
        if missing:
            raise RuntimeError(f"Link {link.link_id} references unknown nodes {missing}")
        self.links[link.link_id] = link

    def assign_address(self, node_id: str, link_id: str, address: str, network: str) -> None:
        if link_id not in self.links:
            raise RuntimeError(f"Cannot address {node_id} on unknown link {link_id}")
        self.addresses.append((node_id, link_id, address, network))

    def install_service(self, binding: ServiceBinding) -> None:
        self.services[binding.label] = binding

    def install_flow(self, flow: FlowDescriptor) -> None:
        if flow.src_node not in self.nodes:
            raise RuntimeError(f"Flow {flow.flow_id} starts on unknown node {flow.src_node}")
        self.flows[flow.flow_id] = flow
        port = self._source_ports.get(flow.src_node, EPHEMERAL_PORT_BASE)
        self._source_ports[flow.src_node] = port + 1
        self._flow_ports[flow.flow_id] = port
        self._push(flow.start, "start", flow.flow_id)
        self._push(flow.stop, "stop", flow.flow_id)

    def enable_capture(self, name: str, node_id: str, link_id: str, promiscuous: bool = True) -> str:
        # ns-3 style artifact name: <prefix>-<node>-<device>.pcap
        device = self.nodes[node_id].link_ids.index(link_id)
        artifact = f"{name}-{node_id}-{device}.pcap"
        self.captures.append({
            "name": name,
            "node_id": node_id,
            "link_id": link_id,
            "promiscuous": promiscuous,
            "artifact": artifact,
        })
        return artifact

    def enable_flow_monitor(self) -> None:
        self.flow_monitor = True

    def populate_routing(self) -> None:
        self.routing_ready = True

    # ── Execution ───────────────────────────────────────────────────

    def run(self, until: float) -> None:
        """Drain every event up to ``until`` in (time, insertion) order."""
        if not self.routing_ready:
            raise RuntimeError("populate_routing() must be called before run()")
        while self._events and self._events[0][0] <= until:
            time, seq, kind, flow_id = heapq.heappop(self._events)
            self.now = time
            if kind == "start":
                self._first_tx.setdefault(flow_id, time)
            self.executed.append({"time": time, "seq": seq, "event": kind, "flow_id": flow_id})
        self.now = until
        logger.info("Dry run finished", extra={"events": len(self.executed), "until": until})

        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with open(self.output_dir / self.SCHEDULE_FILE, "w", encoding="utf-8") as f:
                json.dump(
                    {"until": until, "captures": self.captures, "events": self.executed},
                    f,
                    indent=2,
                    default=str,
                )

    def serialize_flow_monitor(self, path: Union[str, Path]) -> Path:
        """Write FlowMonitor XML: classifier 5-tuples plus zeroed counters."""
        if not self.flow_monitor:
            raise RuntimeError("Flow monitor was not enabled")
        root = ET.Element("FlowMonitor")
        stats = ET.SubElement(root, "FlowStats")
        classifier = ET.SubElement(root, "Ipv4FlowClassifier")

        for number, (flow_id, first_tx) in enumerate(self._first_tx.items(), start=1):
            flow = self.flows[flow_id]
            ET.SubElement(stats, "Flow", {
                "flowId": str(number),
                "timeFirstTxPacket": to_ns(first_tx),
                "timeFirstRxPacket": to_ns(first_tx),
                "timeLastTxPacket": to_ns(first_tx),
                "timeLastRxPacket": to_ns(first_tx),
                "delaySum": "+0.0ns",
                "jitterSum": "+0.0ns",
                "lastDelay": "+0.0ns",
                "txBytes": "0",
                "rxBytes": "0",
                "txPackets": "0",
                "rxPackets": "0",
                "lostPackets": "0",
                "timesForwarded": "0",
            })
            ET.SubElement(classifier, "Flow", {
                "flowId": str(number),
                "sourceAddress": flow.src_address,
                "destinationAddress": flow.dst_address,
                "protocol": str(IP_PROTOCOLS[flow.transport]),
                "sourcePort": str(self._flow_ports[flow_id]),
                "destinationPort": str(flow.dst_port),
            })

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        ET.ElementTree(root).write(path, encoding="utf-8", xml_declaration=True)
        return path

    def destroy(self) -> None:
        self._events.clear()
        self.flows.clear()
        self._first_tx.clear()

    # ── Internal helpers ────────────────────────────────────────────

    def _push(self, time: float, kind: str, flow_id: str) -> None:
        heapq.heappush(self._events, (time, next(self._seq), kind, flow_id))
