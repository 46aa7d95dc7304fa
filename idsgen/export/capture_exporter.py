"""
Capture and label export.

Decides where packet captures are taken, asks the engine for them, and writes
the label manifest that maps every capture artifact to the labeled flow
windows visible on the captured link.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from ..simulation.network_topology import NetworkTopology, Role
from ..simulation.scenario_timeline import FrozenTimeline
from ..simulation.traffic_generator import FlowDescriptor
from .engine import SimulationEngine

if TYPE_CHECKING:
    from ..simulation.scenario_orchestrator import Scenario

logger = logging.getLogger(__name__)

MANIFEST_FILE = "label-manifest.json"
TIMELINE_FILE = "timeline.json"
VISUALIZATION_FILE = "network-visualization.json"


@dataclass(frozen=True)
class MonitoringPoint:
    name: str
    link_id: str
    node_id: str
    promiscuous: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "link_id": self.link_id,
            "node_id": self.node_id,
            "promiscuous": self.promiscuous,
        }


class CaptureExporter:
    """
    Places monitoring points on a topology and writes the label artifacts.

    Args:
        topology: The scenario topology.
        prefix: Prefix of every capture name.
        promiscuous: Whether captures see traffic not addressed to the node.
    """

    def __init__(self, topology: NetworkTopology, prefix: str = "ids", promiscuous: bool = True) -> None:
        self.topology = topology
        self.prefix = prefix
        self.promiscuous = promiscuous
        self._paths: Dict[Tuple[str, str], List[str]] = {}

    # ── Monitoring points ───────────────────────────────────────────

    def monitoring_points(self) -> List[MonitoringPoint]:
        topo = self.topology
        core = topo.core_router
        points: List[MonitoringPoint] = []

        def add(name: str, link_id: str, node_id: str) -> None:
            points.append(MonitoringPoint(f"{self.prefix}-{name}", link_id, node_id, self.promiscuous))

        uplinks = [l for l in topo.links_in_group("core") if l.link_id.startswith("core-uplink")]
        for i, link in enumerate(uplinks):
            add(f"core-router-{i}", link.link_id, core.node_id)
        for i, link in enumerate(uplinks):
            dist = next(m for m in link.members if m != core.node_id)
            add(f"distribution-switch-{i}", link.link_id, dist)

        for k, sw in enumerate(topo.nodes_by_role(Role.ACCESS_SWITCH)):
            add(f"access-switch-{k}", f"access-uplink-{k}", sw.node_id)

        vpn = topo.vpn_server
        if vpn is not None:
            add("vpn-server", "vpn-uplink", vpn.node_id)

        for i, server in enumerate(topo.dmz_servers):
            add(f"dmz-server-{i}", "dmz-lan", server.node_id)

        for k, ap in enumerate(topo.nodes_by_role(Role.WIFI_AP)):
            if f"wifi-bss-{k}" in topo.links:
                add(f"wifi-ap-{k}", f"wifi-bss-{k}", ap.node_id)

        return points

    def install(self, engine: SimulationEngine, flow_monitor: bool = True) -> Dict[str, str]:
        """Request every capture (and the flow monitor); returns name -> artifact."""
        artifacts: Dict[str, str] = {}
        for point in self.monitoring_points():
            artifacts[point.name] = engine.enable_capture(
                point.name, point.node_id, point.link_id, point.promiscuous
            )
        if flow_monitor:
            engine.enable_flow_monitor()
        logger.info("Captures requested", extra={"captures": len(artifacts)})
        return artifacts

    # ── Label attribution ───────────────────────────────────────────

    def crosses(self, flow: FlowDescriptor, link_id: str) -> bool:
        """True if the flow's tree path traverses ``link_id``."""
        key = (flow.src_node, flow.dst_node)
        if key not in self._paths:
            self._paths[key] = self.topology.links_on_path(*key)
        return link_id in self._paths[key]

    def flows_on_link(self, timeline: FrozenTimeline, link_id: str) -> List[FlowDescriptor]:
        return [f for f in timeline if self.crosses(f, link_id)]

    def build_manifest(self, scenario: "Scenario", artifacts: Dict[str, str]) -> Dict[str, Any]:
        timeline = scenario.timeline
        captures = []
        for point in self.monitoring_points():
            visible = self.flows_on_link(timeline, point.link_id)
            windows: Dict[str, List[float]] = {}
            for f in visible:
                lo, hi = windows.get(f.label, [f.start, f.stop])
                windows[f.label] = [min(lo, f.start), max(hi, f.stop)]
            captures.append({
                **point.to_dict(),
                "artifact": artifacts.get(point.name),
                "label_windows": dict(sorted(windows.items())),
                "flows": [
                    {
                        "flow_id": f.flow_id,
                        "label": f.label,
                        "category": f.category.value,
                        "src_address": f.src_address,
                        "dst_address": f.dst_address,
                        "dst_port": f.dst_port,
                        "transport": f.transport.value,
                        "start": round(f.start, 6),
                        "stop": round(f.stop, 6),
                    }
                    for f in visible
                ],
            })

        return {
            "scenario": scenario.metadata(),
            "captures": captures,
        }

    # ── Output ──────────────────────────────────────────────────────

    def write(self, output_dir: Path, scenario: "Scenario", artifacts: Dict[str, str]) -> Dict[str, Path]:
        """Write manifest, timeline and visualization files into ``output_dir``."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {
            "manifest": output_dir / MANIFEST_FILE,
            "timeline": output_dir / TIMELINE_FILE,
            "visualization": output_dir / VISUALIZATION_FILE,
        }
        with open(paths["manifest"], "w", encoding="utf-8") as f:
            json.dump(self.build_manifest(scenario, artifacts), f, indent=2, default=str)
        with open(paths["timeline"], "w", encoding="utf-8") as f:
            f.write(scenario.timeline.to_json())
        with open(paths["visualization"], "w", encoding="utf-8") as f:
            json.dump(self.topology.to_visualization(), f, indent=2, default=str)

        logger.info("Label artifacts written", extra={"output_dir": str(output_dir)})
        return paths
