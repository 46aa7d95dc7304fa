"""
Scenario Orchestrator for the IDS scenario generator.

Runs the pipeline (topology, addressing, services, benign traffic, attacks,
timeline) from validated settings and drives a simulation engine with the
frozen result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..export.capture_exporter import CaptureExporter
from ..export.engine import SimulationEngine
from ..export.flow_labeler import LABELED_FLOWS_FILE, FlowLabeler
from ..utils.settings import ScenarioSettings
from .address_planner import AddressPlanner
from .attack_generator import AttackGenerator, AttackScheduler, AttackWindow
from .network_topology import NetworkTopology
from .randomness import RandomStreams
from .scenario_timeline import FrozenTimeline, Timeline
from .service_registry import ServiceRegistry
from .traffic_generator import TrafficGenerator

logger = logging.getLogger(__name__)

FLOWMON_FILE = "flowmon-results.xml"


@dataclass
class ScenarioContext:
    """Everything built before the first generator runs."""

    topology: NetworkTopology
    addressing: AddressPlanner
    registry: ServiceRegistry
    streams: RandomStreams
    horizon: float


@dataclass
class Scenario:
    """A fully generated, frozen scenario."""

    name: str
    context: ScenarioContext
    timeline: FrozenTimeline
    attack_windows: List[AttackWindow] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    seeded: bool = True

    @property
    def topology(self) -> NetworkTopology:
        return self.context.topology

    def metadata(self) -> Dict[str, Any]:
        ctx = self.context
        return {
            "name": self.name,
            "seed": ctx.streams.root_seed,
            "seed_source": "configured" if self.seeded else "entropy",
            "horizon": ctx.horizon,
            "topology": ctx.topology.summary(),
            "subnets": ctx.addressing.to_dict(),
            "services": ctx.registry.to_dict(),
            "attack_windows": [w.to_dict() for w in self.attack_windows],
            "warnings": list(self.warnings),
            "flow_counts": self.timeline.counts_by_label(),
            "timeline_digest": self.timeline.digest(),
        }


class ScenarioOrchestrator:
    """
    Builds a scenario from settings and hands it to an engine.

    Args:
        settings: Validated settings (defaults when None).
    """

    def __init__(self, settings: Optional[ScenarioSettings] = None) -> None:
        self.settings = settings or ScenarioSettings()
        self.scenario: Optional[Scenario] = None

    # ── Public API ──────────────────────────────────────────────────

    def build_context(self) -> ScenarioContext:
        s = self.settings
        horizon = s.scenario.horizon
        streams = RandomStreams(s.scenario.seed)

        topology = NetworkTopology(**s.topology.model_dump())
        addressing = AddressPlanner(**s.addressing.model_dump())
        addressing.plan(topology)
        registry = ServiceRegistry(topology, horizon, **s.services.model_dump())

        logger.info(
            "Scenario context built",
            extra={"nodes": topology.num_nodes, "links": len(topology.links), "seed": streams.root_seed},
        )
        return ScenarioContext(topology, addressing, registry, streams, horizon)

    def build(self) -> Scenario:
        """Generate and freeze the whole timeline."""
        s = self.settings
        ctx = self.build_context()
        timeline = Timeline()

        if s.benign.enabled:
            benign = TrafficGenerator(
                ctx.topology,
                ctx.registry,
                ctx.streams,
                ctx.horizon,
                services=s.benign.services,
                populations=s.benign.populations,
            )
            timeline.extend(benign.generate())

        attacks = AttackGenerator(
            ctx.topology,
            ctx.registry,
            ctx.streams,
            ctx.horizon,
            enabled=s.attacks.active_archetypes(),
            attacker_counts=s.attacks.attackers,
            scheduler=AttackScheduler(ctx.horizon, epoch=s.attacks.epoch, pinned=s.attacks.windows),
        )
        timeline.extend(attacks.expand())

        frozen = timeline.freeze(ctx.horizon)
        self.scenario = Scenario(
            name=s.scenario.name,
            context=ctx,
            timeline=frozen,
            attack_windows=attacks.windows,
            warnings=list(attacks.warnings),
            seeded=s.scenario.seed is not None,
        )
        logger.info(
            "Scenario built",
            extra={"flows": len(frozen), "labels": len(frozen.counts_by_label()), "digest": frozen.digest()},
        )
        return self.scenario

    def execute(
        self, engine: SimulationEngine, output_dir: Optional[Union[str, Path]] = None
    ) -> Dict[str, Path]:
        """
        Instantiate the scenario on ``engine``, run it and write every artifact.

        Returns:
            Mapping of artifact kind to written path.
        """
        scenario = self.scenario or self.build()
        s = self.settings
        out = Path(output_dir or s.scenario.output_dir)
        topology = scenario.topology
        exporter = CaptureExporter(topology, prefix=s.capture.prefix, promiscuous=s.capture.promiscuous)

        try:
            for node in topology.nodes.values():
                engine.create_node(node)
            for link in topology.links.values():
                engine.create_link(link)
            for subnet in scenario.context.addressing.subnets:
                for node_id, address in subnet.assignments:
                    engine.assign_address(node_id, subnet.link_id, address, str(subnet.network))
            for binding in scenario.context.registry.bindings():
                engine.install_service(binding)

            artifacts: Dict[str, str] = {}
            if s.capture.enabled:
                artifacts = exporter.install(engine, flow_monitor=s.capture.flow_monitor)
            elif s.capture.flow_monitor:
                engine.enable_flow_monitor()

            engine.populate_routing()
            for flow in scenario.timeline:
                engine.install_flow(flow)
            engine.run(until=scenario.context.horizon)

            paths = exporter.write(out, scenario, artifacts)
            if s.capture.flow_monitor:
                flowmon = engine.serialize_flow_monitor(out / FLOWMON_FILE)
                paths["flowmon"] = flowmon
                labeler = FlowLabeler(scenario.timeline)
                labeler.label_file(flowmon, out / LABELED_FLOWS_FILE)
                paths["labeled_flows"] = out / LABELED_FLOWS_FILE
        finally:
            engine.destroy()

        logger.info("Scenario executed", extra={"output_dir": str(out), "artifacts": len(paths)})
        return paths
