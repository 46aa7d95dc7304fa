from .engine import DryRunEngine, SimulationEngine
from .capture_exporter import CaptureExporter, MonitoringPoint
from .flow_labeler import FlowLabeler, parse_flow_monitor

__all__ = [
    "SimulationEngine",
    "DryRunEngine",
    "CaptureExporter",
    "MonitoringPoint",
    "FlowLabeler",
    "parse_flow_monitor",
]
