"""
Flow labeler.

Parses the engine's FlowMonitor XML and attributes each measured flow to the
scenario descriptor it came from, producing a labeled per-flow CSV.
"""

from __future__ import annotations

import csv
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..simulation.scenario_timeline import FrozenTimeline
from ..simulation.traffic_generator import FlowDescriptor
from .engine import IP_PROTOCOLS

logger = logging.getLogger(__name__)

UNLABELED = "unlabeled"
LABELED_FLOWS_FILE = "labeled-flows.csv"

# Slack on window edges for nanosecond round-off
_EDGE_TOLERANCE = 1e-6


def _parse_time_ns(value: Optional[str]) -> float:
    """``+1.5e+09ns`` -> 1.5e9"""
    if not value:
        return 0.0
    return float(value.rstrip("ns").lstrip("+"))


@dataclass
class FlowRecord:
    """One flow as measured by the engine's flow monitor."""

    flow_id: int
    source_address: str = ""
    destination_address: str = ""
    source_port: int = 0
    destination_port: int = 0
    protocol: int = 0
    tx_packets: int = 0
    rx_packets: int = 0
    tx_bytes: int = 0
    rx_bytes: int = 0
    lost_packets: int = 0
    delay_sum_ns: float = 0.0
    jitter_sum_ns: float = 0.0
    first_tx_ns: float = 0.0
    last_rx_ns: float = 0.0

    @property
    def first_tx(self) -> float:
        return self.first_tx_ns / 1e9

    @property
    def duration(self) -> float:
        return max(0.0, (self.last_rx_ns - self.first_tx_ns) / 1e9)

    @property
    def throughput_bps(self) -> float:
        return self.rx_bytes * 8 / self.duration if self.duration > 0 else 0.0

    @property
    def mean_delay_ms(self) -> float:
        return self.delay_sum_ns / self.rx_packets / 1e6 if self.rx_packets else 0.0

    @property
    def mean_jitter_ms(self) -> float:
        return self.jitter_sum_ns / (self.rx_packets - 1) / 1e6 if self.rx_packets > 1 else 0.0

    @property
    def loss_ratio(self) -> float:
        return self.lost_packets / self.tx_packets if self.tx_packets else 0.0


def parse_flow_monitor(path: Union[str, Path]) -> List[FlowRecord]:
    """Read a FlowMonitor XML file. Parse errors propagate."""
    root = ET.parse(path).getroot()

    classifier: Dict[int, Dict[str, str]] = {}
    clf_elem = root.find("Ipv4FlowClassifier")
    if clf_elem is not None:
        for elem in clf_elem.findall("Flow"):
            classifier[int(elem.get("flowId", 0))] = dict(elem.attrib)

    records: List[FlowRecord] = []
    stats_elem = root.find("FlowStats")
    if stats_elem is None:
        return records

    for elem in stats_elem.findall("Flow"):
        flow_id = int(elem.get("flowId", 0))
        clf = classifier.get(flow_id, {})
        records.append(FlowRecord(
            flow_id=flow_id,
            source_address=clf.get("sourceAddress", ""),
            destination_address=clf.get("destinationAddress", ""),
            source_port=int(clf.get("sourcePort", 0)),
            destination_port=int(clf.get("destinationPort", 0)),
            protocol=int(clf.get("protocol", 0)),
            tx_packets=int(elem.get("txPackets", 0)),
            rx_packets=int(elem.get("rxPackets", 0)),
            tx_bytes=int(elem.get("txBytes", 0)),
            rx_bytes=int(elem.get("rxBytes", 0)),
            lost_packets=int(elem.get("lostPackets", 0)),
            delay_sum_ns=_parse_time_ns(elem.get("delaySum")),
            jitter_sum_ns=_parse_time_ns(elem.get("jitterSum")),
            first_tx_ns=_parse_time_ns(elem.get("timeFirstTxPacket")),
            last_rx_ns=_parse_time_ns(elem.get("timeLastRxPacket")),
        ))
    return records


@dataclass(frozen=True)
class LabeledFlow:
    record: FlowRecord
    label: str
    category: str
    descriptor_id: Optional[str] = None


_FlowKey = Tuple[str, str, int, int]


class FlowLabeler:
    """Joins measured flows to timeline descriptors."""

    CSV_FIELDS = [
        "flow_id", "descriptor_id", "label", "category",
        "source_address", "source_port", "destination_address", "destination_port", "protocol",
        "first_tx_s", "tx_packets", "rx_packets", "tx_bytes", "rx_bytes", "lost_packets",
        "throughput_bps", "mean_delay_ms", "mean_jitter_ms", "loss_ratio",
    ]

    def __init__(self, timeline: FrozenTimeline) -> None:
        self.timeline = timeline
        # (client address, server address, service port, protocol) -> descriptors
        self._index: Dict[_FlowKey, List[FlowDescriptor]] = {}
        for flow in timeline:
            key = (flow.src_address, flow.dst_address, flow.dst_port, IP_PROTOCOLS[flow.transport])
            self._index.setdefault(key, []).append(flow)

    def match(self, record: FlowRecord) -> Optional[FlowDescriptor]:
        """Descriptor for a record, trying both directions of the conversation."""
        forward = (record.source_address, record.destination_address, record.destination_port, record.protocol)
        reverse = (record.destination_address, record.source_address, record.source_port, record.protocol)
        for key in (forward, reverse):
            candidates = [
                f for f in self._index.get(key, [])
                if f.start - _EDGE_TOLERANCE <= record.first_tx <= f.stop + _EDGE_TOLERANCE
            ]
            if candidates:
                # Latest session already started; stable on ties
                return max(candidates, key=lambda f: f.start)
        return None

    def label(self, records: List[FlowRecord]) -> List[LabeledFlow]:
        labeled: List[LabeledFlow] = []
        for record in records:
            flow = self.match(record)
            if flow is None:
                labeled.append(LabeledFlow(record, UNLABELED, UNLABELED))
            else:
                labeled.append(LabeledFlow(record, flow.label, flow.category.value, flow.flow_id))
        unmatched = sum(1 for l in labeled if l.label == UNLABELED)
        logger.info("Flows labeled", extra={"flows": len(labeled), "unlabeled": unmatched})
        return labeled

    def write_csv(self, labeled: List[LabeledFlow], path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.CSV_FIELDS)
            writer.writeheader()
            for item in labeled:
                r = item.record
                writer.writerow({
                    "flow_id": r.flow_id,
                    "descriptor_id": item.descriptor_id or "",
                    "label": item.label,
                    "category": item.category,
                    "source_address": r.source_address,
                    "source_port": r.source_port,
                    "destination_address": r.destination_address,
                    "destination_port": r.destination_port,
                    "protocol": r.protocol,
                    "first_tx_s": round(r.first_tx, 6),
                    "tx_packets": r.tx_packets,
                    "rx_packets": r.rx_packets,
                    "tx_bytes": r.tx_bytes,
                    "rx_bytes": r.rx_bytes,
                    "lost_packets": r.lost_packets,
                    "throughput_bps": round(r.throughput_bps, 3),
                    "mean_delay_ms": round(r.mean_delay_ms, 6),
                    "mean_jitter_ms": round(r.mean_jitter_ms, 6),
                    "loss_ratio": round(r.loss_ratio, 6),
                })
        return path

    def label_file(self, flowmon_path: Union[str, Path], csv_path: Union[str, Path]) -> List[LabeledFlow]:
        labeled = self.label(parse_flow_monitor(flowmon_path))
        self.write_csv(labeled, csv_path)
        return labeled
