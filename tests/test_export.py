"""Tests for the engine interface, capture export, flow labeling and the orchestrator."""

import csv
import json
import xml.etree.ElementTree as ET

import pytest

from idsgen.export.capture_exporter import MANIFEST_FILE, CaptureExporter
from idsgen.export.engine import DryRunEngine, to_ns
from idsgen.export.flow_labeler import UNLABELED, FlowLabeler, FlowRecord, parse_flow_monitor
from idsgen.simulation.address_planner import AddressPlanner
from idsgen.simulation.network_topology import NetworkTopology
from idsgen.simulation.scenario_orchestrator import ScenarioOrchestrator
from idsgen.simulation.scenario_timeline import Timeline
from idsgen.simulation.service_registry import Transport
from idsgen.simulation.traffic_generator import AppKind, Category, FlowDescriptor, FlowShape
from idsgen.utils.settings import ScenarioSettings


HORIZON = 1500.0


def make_flow(flow_id, label, start, stop, src="10.1.0.17", dst="10.1.0.41", port=80,
              transport=Transport.TCP, attack=False):
    return FlowDescriptor(
        flow_id=flow_id,
        label=label,
        category=Category.ATTACK if attack else Category.BENIGN,
        src_node="ENT000",
        src_address=src,
        dst_node="DMZ000",
        dst_address=dst,
        dst_port=port,
        transport=transport,
        shape=FlowShape(AppKind.BULK, max_bytes=512),
        start=start,
        stop=stop,
        population="enterprise",
        exclusive=attack,
    )


def freeze(*flows):
    tl = Timeline()
    tl.extend(flows)
    return tl.freeze(HORIZON)


def write_flowmon(path, flows):
    """flows: (flowId, src, dst, sport, dport, proto, first_tx_seconds, extra stats)"""
    root = ET.Element("FlowMonitor")
    stats = ET.SubElement(root, "FlowStats")
    clf = ET.SubElement(root, "Ipv4FlowClassifier")
    for fid, src, dst, sport, dport, proto, first_tx, extra in flows:
        ET.SubElement(stats, "Flow", {"flowId": str(fid), "timeFirstTxPacket": to_ns(first_tx), **extra})
        ET.SubElement(clf, "Flow", {
            "flowId": str(fid),
            "sourceAddress": src,
            "destinationAddress": dst,
            "sourcePort": str(sport),
            "destinationPort": str(dport),
            "protocol": str(proto),
        })
    ET.ElementTree(root).write(path, encoding="utf-8", xml_declaration=True)
    return path


@pytest.fixture
def topology():
    topo = NetworkTopology()
    AddressPlanner().plan(topo)
    return topo


@pytest.fixture
def engine(topology):
    eng = DryRunEngine()
    for node in topology.nodes.values():
        eng.create_node(node)
    for link in topology.links.values():
        eng.create_link(link)
    return eng


def settings_for(tmp_path, **sections):
    config = {"scenario": {"seed": 42, "output_dir": str(tmp_path)}}
    config.update(sections)
    return ScenarioSettings.from_config(config)


# ── Dry-run engine ──────────────────────────────────────────────────

class TestDryRunEngine:
    def test_events_in_time_then_insertion_order(self, engine):
        engine.install_flow(make_flow("A", "HTTP", 5.0, 20.0))
        engine.install_flow(make_flow("B", "HTTP", 5.0, 10.0))
        engine.install_flow(make_flow("C", "DNS", 1.0, 5.0))
        engine.populate_routing()
        engine.run(until=HORIZON)
        order = [(e["time"], e["event"], e["flow_id"]) for e in engine.executed]
        assert order == [
            (1.0, "start", "C"),
            (5.0, "start", "A"),
            (5.0, "start", "B"),
            (5.0, "stop", "C"),
            (10.0, "stop", "B"),
            (20.0, "stop", "A"),
        ]

    def test_run_stops_at_until(self, engine):
        engine.install_flow(make_flow("A", "HTTP", 5.0, 20.0))
        engine.populate_routing()
        engine.run(until=10.0)
        assert [e["event"] for e in engine.executed] == ["start"]
        assert engine.now == 10.0

    def test_run_requires_routing(self, engine):
        with pytest.raises(RuntimeError):
            engine.run(until=10.0)

    def test_flow_monitor_must_be_enabled(self, engine, tmp_path):
        engine.populate_routing()
        engine.run(until=10.0)
        with pytest.raises(RuntimeError):
            engine.serialize_flow_monitor(tmp_path / "fm.xml")

    def test_unknown_link_member(self, topology):
        eng = DryRunEngine()
        with pytest.raises(RuntimeError):
            eng.create_link(topology.get_link("dmz-lan"))

    def test_capture_artifact_name(self, engine):
        artifact = engine.enable_capture("ids-core-router-1", "CORE000", "core-uplink-1")
        assert artifact == "ids-core-router-1-CORE000-1.pcap"

    def test_source_ports_per_node(self, engine, tmp_path):
        engine.install_flow(make_flow("A", "HTTP", 1.0, 5.0))
        engine.install_flow(make_flow("B", "HTTPS", 2.0, 5.0, port=443))
        engine.enable_flow_monitor()
        engine.populate_routing()
        engine.run(until=HORIZON)
        records = parse_flow_monitor(engine.serialize_flow_monitor(tmp_path / "fm.xml"))
        assert [r.source_port for r in records] == [49153, 49154]
        assert records[1].destination_port == 443
        assert records[1].protocol == 6
        assert records[1].first_tx == pytest.approx(2.0)

    def test_schedule_file(self, engine, tmp_path):
        eng = DryRunEngine(tmp_path)
        eng.nodes = engine.nodes
        eng.install_flow(make_flow("A", "HTTP", 1.0, 5.0))
        eng.populate_routing()
        eng.run(until=HORIZON)
        schedule = json.loads((tmp_path / DryRunEngine.SCHEDULE_FILE).read_text())
        assert schedule["until"] == HORIZON
        assert len(schedule["events"]) == 2


# ── Capture exporter ────────────────────────────────────────────────

class TestCaptureExporter:
    def test_monitoring_points(self, topology):
        names = [p.name for p in CaptureExporter(topology).monitoring_points()]
        assert names == [
            "ids-core-router-0", "ids-core-router-1",
            "ids-distribution-switch-0", "ids-distribution-switch-1",
            "ids-access-switch-0",
            "ids-vpn-server",
            "ids-dmz-server-0", "ids-dmz-server-1", "ids-dmz-server-2", "ids-dmz-server-3", "ids-dmz-server-4",
            "ids-wifi-ap-0",
        ]

    def test_install_requests_every_capture(self, topology, engine):
        artifacts = CaptureExporter(topology, prefix="lab").install(engine)
        assert len(artifacts) == 12
        assert engine.flow_monitor
        assert all(name.startswith("lab-") for name in artifacts)

    def test_crosses(self, topology):
        exporter = CaptureExporter(topology)
        flow = make_flow("A", "HTTP", 1.0, 5.0)
        assert exporter.crosses(flow, "core-uplink-0")
        assert not exporter.crosses(flow, "vpn-uplink")


# ── Flow labeler ────────────────────────────────────────────────────

class TestFlowLabeler:
    def test_forward_match(self, tmp_path):
        timeline = freeze(make_flow("A", "HTTP", 10.0, 100.0))
        path = write_flowmon(tmp_path / "fm.xml", [(1, "10.1.0.17", "10.1.0.41", 49153, 80, 6, 12.0, {})])
        [labeled] = FlowLabeler(timeline).label(parse_flow_monitor(path))
        assert labeled.label == "HTTP"
        assert labeled.descriptor_id == "A"
        assert labeled.category == "benign"

    def test_reverse_direction(self, tmp_path):
        timeline = freeze(make_flow("A", "syn-flood", 60.0, 100.0, attack=True))
        path = write_flowmon(tmp_path / "fm.xml", [(1, "10.1.0.41", "10.1.0.17", 80, 49153, 6, 60.5, {})])
        [labeled] = FlowLabeler(timeline).label(parse_flow_monitor(path))
        assert labeled.label == "syn-flood"
        assert labeled.category == "attack"

    def test_latest_started_session_wins(self):
        timeline = freeze(
            make_flow("A", "HTTP", 1.0, 100.0),
            make_flow("B", "HTTP", 5.0, 100.0),
        )
        record = FlowRecord(1, "10.1.0.17", "10.1.0.41", 49153, 80, 6, first_tx_ns=6e9)
        assert FlowLabeler(timeline).match(record).flow_id == "B"

    def test_unmatched_is_unlabeled(self, tmp_path):
        timeline = freeze(make_flow("A", "HTTP", 10.0, 100.0))
        path = write_flowmon(tmp_path / "fm.xml", [
            (1, "10.1.0.17", "10.1.0.41", 49153, 80, 6, 200.0, {}),
            (2, "10.1.0.17", "10.1.0.41", 49153, 80, 17, 20.0, {}),
        ])
        labeled = FlowLabeler(timeline).label(parse_flow_monitor(path))
        assert [l.label for l in labeled] == [UNLABELED, UNLABELED]

    def test_record_statistics(self, tmp_path):
        extra = {
            "timeLastRxPacket": to_ns(14.0),
            "txPackets": "10",
            "rxPackets": "8",
            "rxBytes": "4000",
            "lostPackets": "2",
            "delaySum": "+16000000.0ns",
            "jitterSum": "+7000000.0ns",
        }
        path = write_flowmon(tmp_path / "fm.xml", [(1, "10.1.0.17", "10.1.0.41", 49153, 80, 6, 10.0, extra)])
        [record] = parse_flow_monitor(path)
        assert record.duration == pytest.approx(4.0)
        assert record.throughput_bps == pytest.approx(8000.0)
        assert record.mean_delay_ms == pytest.approx(2.0)
        assert record.mean_jitter_ms == pytest.approx(1.0)
        assert record.loss_ratio == pytest.approx(0.2)

    def test_malformed_xml(self, tmp_path):
        path = tmp_path / "broken.xml"
        path.write_text("<FlowMonitor><FlowStats>")
        with pytest.raises(ET.ParseError):
            parse_flow_monitor(path)

    def test_write_csv(self, tmp_path):
        timeline = freeze(make_flow("A", "HTTP", 10.0, 100.0))
        fm = write_flowmon(tmp_path / "fm.xml", [(1, "10.1.0.17", "10.1.0.41", 49153, 80, 6, 12.0, {})])
        out = tmp_path / "flows.csv"
        FlowLabeler(timeline).label_file(fm, out)
        with open(out, newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["label"] == "HTTP"
        assert rows[0]["descriptor_id"] == "A"
        assert list(rows[0]) == FlowLabeler.CSV_FIELDS


# ── Orchestrator ────────────────────────────────────────────────────

class TestScenarioOrchestrator:
    def test_same_seed_same_timeline(self, tmp_path):
        a = ScenarioOrchestrator(settings_for(tmp_path)).build()
        b = ScenarioOrchestrator(settings_for(tmp_path)).build()
        assert a.timeline.to_json() == b.timeline.to_json()

    def test_seed_changes_values_not_structure(self, tmp_path):
        a = ScenarioOrchestrator(settings_for(tmp_path)).build()
        other = settings_for(tmp_path).with_overrides({"scenario": {"seed": 43}})
        b = ScenarioOrchestrator(other).build()
        assert a.timeline.counts_by_label() == b.timeline.counts_by_label()
        assert a.timeline.digest() != b.timeline.digest()

    def test_unseeded_records_entropy_seed(self, tmp_path):
        s = ScenarioSettings.from_config({"benign": {"enabled": False}, "attacks": {"archetypes": ["ddos"]}})
        meta = ScenarioOrchestrator(s).build().metadata()
        assert meta["seed_source"] == "entropy"
        assert isinstance(meta["seed"], int)

    def test_every_attack_is_labeled(self, tmp_path):
        scenario = ScenarioOrchestrator(settings_for(tmp_path)).build()
        counts = scenario.timeline.counts_by_label()
        for label in ("syn-flood", "port-scan", "sql-injection", "botnet-cnc", "zero-day"):
            assert counts[label] > 0
        assert all(f.exclusive for f in scenario.timeline.attacks())

    def test_execute_writes_artifacts(self, tmp_path):
        orchestrator = ScenarioOrchestrator(settings_for(tmp_path))
        engine = DryRunEngine(tmp_path)
        paths = orchestrator.execute(engine, tmp_path)

        assert set(paths) == {"manifest", "timeline", "visualization", "flowmon", "labeled_flows"}
        for path in paths.values():
            assert path.exists()
        assert (tmp_path / DryRunEngine.SCHEDULE_FILE).exists()

        manifest = json.loads((tmp_path / MANIFEST_FILE).read_text())
        assert manifest["scenario"]["seed"] == 42
        assert manifest["scenario"]["seed_source"] == "configured"
        captures = {c["name"]: c for c in manifest["captures"]}
        assert captures["ids-core-router-0"]["artifact"] == "ids-core-router-0-CORE000-0.pcap"
        # enterprise and wifi attackers reach the DMZ and core via core-uplink-0
        assert "udp-flood" in captures["ids-core-router-0"]["label_windows"]
        assert "icmp-flood" in captures["ids-core-router-0"]["label_windows"]
        # remote attackers only come in through the VPN side
        assert "syn-flood" not in captures["ids-core-router-0"]["label_windows"]
        assert "syn-flood" in captures["ids-core-router-1"]["label_windows"]
        assert captures["ids-vpn-server"]["label_windows"]["syn-flood"] == [60.0, 100.0]

    def test_labeled_csv_has_no_unlabeled_rows(self, tmp_path):
        orchestrator = ScenarioOrchestrator(settings_for(tmp_path))
        paths = orchestrator.execute(DryRunEngine(), tmp_path)
        with open(paths["labeled_flows"], newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == len(orchestrator.scenario.timeline)
        assert not [r for r in rows if r["label"] == UNLABELED]

    def test_captures_disabled(self, tmp_path):
        s = settings_for(tmp_path, capture={"enabled": False}, attacks={"archetypes": ["ddos"]})
        engine = DryRunEngine()
        paths = ScenarioOrchestrator(s).execute(engine, tmp_path)
        assert engine.captures == []
        assert "flowmon" in paths

    def test_engine_destroyed_on_failure(self, tmp_path):
        class FailingEngine(DryRunEngine):
            destroyed = False

            def run(self, until):
                raise RuntimeError("boom")

            def destroy(self):
                self.destroyed = True

        engine = FailingEngine()
        s = settings_for(tmp_path, benign={"enabled": False}, attacks={"archetypes": ["ddos"]})
        with pytest.raises(RuntimeError):
            ScenarioOrchestrator(s).execute(engine, tmp_path)
        assert engine.destroyed
