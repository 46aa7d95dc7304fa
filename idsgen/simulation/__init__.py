from .network_topology import NetworkTopology
from .address_planner import AddressPlanner
from .service_registry import ServiceRegistry
from .traffic_generator import FlowDescriptor, TrafficGenerator
from .attack_generator import AttackGenerator, AttackScheduler
from .scenario_timeline import FrozenTimeline, Timeline

__all__ = [
    "NetworkTopology",
    "AddressPlanner",
    "ServiceRegistry",
    "FlowDescriptor",
    "TrafficGenerator",
    "AttackGenerator",
    "AttackScheduler",
    "Timeline",
    "FrozenTimeline",
]
