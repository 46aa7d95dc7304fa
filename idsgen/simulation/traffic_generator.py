"""
Benign Traffic Generator for the IDS scenario generator.

Emits one FlowDescriptor per client session for every enabled population and
service. Shaping parameters are drawn from seeded distributions keyed by
(population, service), so the structure of the traffic (how many flows carry
which label) is fixed while packet sizes, rates and start jitter vary with the
seed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError
from .network_topology import NetworkTopology, Node, POPULATIONS
from .randomness import Distribution, RandomStreams
from .service_registry import ServiceRegistry, Transport

logger = logging.getLogger(__name__)

KB = 1024
MB = 1024 * 1024

# Shortest session a clamped window may keep
MIN_SESSION = 1.0

EMAIL_PROTOCOLS = ("SMTP", "IMAP", "POP3")


class AppKind(str, Enum):
    ON_OFF = "onoff"
    BULK = "bulk"
    ECHO = "echo"


class Category(str, Enum):
    BENIGN = "benign"
    ATTACK = "attack"


@dataclass(frozen=True)
class FlowShape:
    """Application parameters handed to the engine for one flow."""

    app: AppKind
    packet_size: Optional[int] = None
    data_rate: Optional[str] = None
    max_bytes: Optional[int] = None
    max_packets: Optional[int] = None
    interval: Optional[float] = None
    on_time: Optional[Distribution] = None
    off_time: Optional[Distribution] = None
    payload: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"app": self.app.value}
        for key in ("packet_size", "data_rate", "max_bytes", "max_packets", "interval", "payload"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.on_time is not None:
            out["on_time"] = self.on_time.to_engine_attribute()
        if self.off_time is not None:
            out["off_time"] = self.off_time.to_engine_attribute()
        return out


@dataclass(frozen=True)
class FlowDescriptor:
    """One scheduled flow. Immutable once created."""

    flow_id: str
    label: str
    category: Category
    src_node: str
    src_address: str
    dst_node: str
    dst_address: str
    dst_port: int
    transport: Transport
    shape: FlowShape
    start: float
    stop: float
    population: str
    exclusive: bool = False
    seed: int = 0

    @property
    def target(self) -> Tuple[str, int]:
        return self.dst_address, self.dst_port

    @property
    def is_attack(self) -> bool:
        return self.category == Category.ATTACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "label": self.label,
            "category": self.category.value,
            "src_node": self.src_node,
            "src_address": self.src_address,
            "dst_node": self.dst_node,
            "dst_address": self.dst_address,
            "dst_port": self.dst_port,
            "transport": self.transport.value,
            "shape": self.shape.to_dict(),
            "start": round(self.start, 6),
            "stop": round(self.stop, 6),
            "population": self.population,
            "exclusive": self.exclusive,
            "seed": self.seed,
        }


def clamp_window(start: float, stop: Optional[float], horizon: float) -> Tuple[float, float]:
    """Clamp a session window into ``[0, horizon]`` keeping at least MIN_SESSION."""
    start = max(0.0, min(float(start), horizon - MIN_SESSION))
    stop = horizon if stop is None else float(stop)
    stop = min(horizon, max(stop, start + MIN_SESSION))
    return start, stop


def format_rate(bps: float) -> str:
    return f"{int(round(bps))}bps"


class _Session(NamedTuple):
    label: str
    start: float
    stop: Optional[float]
    shape: FlowShape


# ── Shaping distributions ───────────────────────────────────────────

_ENT_HTTP_PAYLOAD = Distribution.uniform(512, 10 * KB)
_ENT_START_JITTER = Distribution.exponential(0.5)
_ENT_EMAIL_SIZE = Distribution.uniform(50 * KB, 150 * KB)
_ENT_EMAIL_GAP = Distribution.exponential(30.0)
_ENT_DNS_SIZE = Distribution.uniform(64, 512)
_ENT_DNS_INTERVAL = Distribution.exponential(0.5)
_ENT_FTP_SIZE = Distribution.uniform(1 * MB, 10 * MB)
_ENT_FTP_SPACING = Distribution.exponential(1.0)
_ENT_SSH_SIZE = Distribution.exponential(500 * KB)
_ENT_SSH_IDLE = Distribution.uniform(1.0, 5.0)
_ENT_ECHO_SIZE = Distribution.uniform(128, 1500)
_ENT_ECHO_INTERVAL = Distribution.exponential(0.1)
_ENT_ECHO_COUNT = Distribution.uniform(10, 50)
_ENT_STREAM_SIZE = Distribution.uniform(512, 1500)
_ENT_STREAM_RATE = Distribution.uniform(1.5, 8.0)
_ENT_STREAM_ON = Distribution.exponential(2.0)
_ENT_STREAM_OFF = Distribution.exponential(0.5)

_WIFI_HTTP_SIZE = Distribution.uniform(512, 1500)
_WIFI_HTTPS_SIZE = Distribution.uniform(512, 2000)
_WIFI_EMAIL_SIZE = Distribution.uniform(30 * KB, 80 * KB)
_WIFI_DNS_SIZE = Distribution.uniform(50, 256)
_WIFI_STREAM_SIZE = Distribution.uniform(400, 1200)
_WIFI_STREAM_RATE = Distribution.uniform(1.0, 4.0)
_WIFI_STREAM_ON = Distribution.exponential(1.5)
_WIFI_STREAM_OFF = Distribution.exponential(0.7)
_WIFI_FTP_SIZE = Distribution.uniform(500 * KB, 2 * MB)
_WIFI_SSH_SIZE = Distribution.uniform(100 * KB, 700 * KB)
_WIFI_ECHO_SIZE = Distribution.uniform(128, 1024)


class TrafficGenerator:
    """
    Benign traffic generator.

    Args:
        topology: Addressed topology.
        registry: Service registry used to resolve every destination.
        streams: Seeded generator factory.
        horizon: Scenario horizon in seconds.
        services: Enabled benign services (default: all of SERVICES).
        populations: Enabled client populations (default: all of POPULATIONS).
    """

    SERVICES = ("HTTP", "HTTPS", "EMAIL", "DNS", "FTP", "SSH", "UDP-ECHO", "STREAMING")

    def __init__(
        self,
        topology: NetworkTopology,
        registry: ServiceRegistry,
        streams: RandomStreams,
        horizon: float,
        services: Optional[Sequence[str]] = None,
        populations: Optional[Sequence[str]] = None,
    ) -> None:
        self.topology = topology
        self.registry = registry
        self.streams = streams
        self.horizon = float(horizon)
        self.services = list(self.SERVICES if services is None else services)
        self.populations = list(POPULATIONS if populations is None else populations)

        unknown = [s for s in self.services if s not in self.SERVICES]
        if unknown:
            raise ConfigurationError(f"Unknown benign services: {unknown}")
        unknown = [p for p in self.populations if p not in POPULATIONS]
        if unknown:
            raise ConfigurationError(f"Unknown client populations: {unknown}")

        self._flow_counter = 0

    # ── Public API ──────────────────────────────────────────────────

    def generate(self) -> List[FlowDescriptor]:
        """Emit every benign FlowDescriptor of the scenario."""
        profiles = {
            "enterprise": self._enterprise_sessions,
            "wifi": self._wifi_sessions,
            "remote": self._remote_sessions,
        }
        flows: List[FlowDescriptor] = []

        for population in self.populations:
            clients = self.topology.population(population)
            if not clients:
                continue
            email_labels = self._email_labels(population, len(clients))
            for service in self.services:
                rng = self.streams.stream("benign", population, service)
                for i, client in enumerate(clients):
                    for session in profiles[population](service, i, rng, email_labels[i]):
                        flows.append(self._descriptor(client, population, session))

        logger.info(
            "Benign traffic generated",
            extra={"flows": len(flows), "populations": self.populations, "services": self.services},
        )
        return flows

    # ── Per-population profiles ─────────────────────────────────────

    def _enterprise_sessions(
        self, service: str, i: int, rng: np.random.Generator, email_label: str
    ) -> List[_Session]:
        if service == "HTTP":
            shape = FlowShape(
                AppKind.ON_OFF,
                packet_size=_ENT_HTTP_PAYLOAD.sample_int(rng),
                data_rate="1Mbps",
                on_time=Distribution.constant(0.2),
                off_time=Distribution.exponential(1.5),
            )
            return [_Session("HTTP", 5.0 + i + _ENT_START_JITTER.sample(rng), None, shape)]

        if service == "HTTPS":
            shape = FlowShape(
                AppKind.ON_OFF,
                packet_size=_ENT_HTTP_PAYLOAD.sample_int(rng),
                data_rate="500Kbps",
                on_time=Distribution.constant(0.3),
                off_time=Distribution.exponential(2.0),
            )
            return [_Session("HTTPS", 6.0 + i + _ENT_START_JITTER.sample(rng), None, shape)]

        if service == "EMAIL":
            return [
                _Session(
                    email_label,
                    10.0 + 2 * i + _ENT_EMAIL_GAP.sample(rng),
                    None,
                    FlowShape(AppKind.BULK, max_bytes=_ENT_EMAIL_SIZE.sample_int(rng)),
                )
                for _ in range(10)
            ]

        if service == "DNS":
            return [
                _Session(
                    "DNS",
                    15.0 + 0.5 * i + 0.1 * j,
                    None,
                    FlowShape(
                        AppKind.ECHO,
                        packet_size=_ENT_DNS_SIZE.sample_int(rng),
                        max_packets=1,
                        interval=_ENT_DNS_INTERVAL.sample(rng),
                    ),
                )
                for j in range(20 + 5 * i)
            ]

        if service == "FTP":
            return [
                _Session(
                    "FTP",
                    20.0 + 0.5 * i + j * _ENT_FTP_SPACING.sample(rng),
                    None,
                    FlowShape(AppKind.BULK, max_bytes=_ENT_FTP_SIZE.sample_int(rng)),
                )
                for j in range(3 + i % 3)
            ]

        if service == "SSH":
            return [
                _Session(
                    "SSH",
                    25.0 + 0.5 * i + j * _ENT_SSH_IDLE.sample(rng),
                    None,
                    FlowShape(AppKind.BULK, max_bytes=max(1, _ENT_SSH_SIZE.sample_int(rng))),
                )
                for j in range(2 + i % 3)
            ]

        if service == "UDP-ECHO":
            shape = FlowShape(
                AppKind.ECHO,
                packet_size=_ENT_ECHO_SIZE.sample_int(rng),
                interval=_ENT_ECHO_INTERVAL.sample(rng),
                max_packets=_ENT_ECHO_COUNT.sample_int(rng),
            )
            return [_Session("UDP-ECHO", 12.0 + 0.5 * i, None, shape)]

        # STREAMING
        shape = FlowShape(
            AppKind.ON_OFF,
            packet_size=_ENT_STREAM_SIZE.sample_int(rng),
            data_rate=format_rate(_ENT_STREAM_RATE.sample(rng) * 1e6),
            on_time=Distribution.constant(_ENT_STREAM_ON.sample(rng)),
            off_time=Distribution.constant(_ENT_STREAM_OFF.sample(rng)),
        )
        return [_Session("STREAMING", 100.0 + 0.5 * i, None, shape)]

    def _wifi_sessions(
        self, service: str, i: int, rng: np.random.Generator, email_label: str
    ) -> List[_Session]:
        if service == "HTTP":
            shape = FlowShape(AppKind.BULK, max_bytes=_WIFI_HTTP_SIZE.sample_int(rng))
            return [_Session("HTTP", 6.0 + 0.75 * i, None, shape)]
        if service == "HTTPS":
            shape = FlowShape(AppKind.BULK, max_bytes=_WIFI_HTTPS_SIZE.sample_int(rng))
            return [_Session("HTTPS", 6.5 + 0.75 * i, None, shape)]
        if service == "EMAIL":
            shape = FlowShape(AppKind.BULK, max_bytes=_WIFI_EMAIL_SIZE.sample_int(rng))
            return [_Session(email_label, 10.0 + 0.5 * i, None, shape)]
        if service == "DNS":
            shape = FlowShape(
                AppKind.ECHO, packet_size=_WIFI_DNS_SIZE.sample_int(rng), max_packets=10, interval=0.5
            )
            return [_Session("DNS", 15.0 + 0.2 * i, None, shape)]
        if service == "FTP":
            shape = FlowShape(AppKind.BULK, max_bytes=_WIFI_FTP_SIZE.sample_int(rng))
            return [_Session("FTP", 20.0 + i, None, shape)]
        if service == "SSH":
            shape = FlowShape(AppKind.BULK, max_bytes=_WIFI_SSH_SIZE.sample_int(rng))
            return [_Session("SSH", 25.0 + 1.2 * i, None, shape)]
        if service == "UDP-ECHO":
            shape = FlowShape(
                AppKind.ECHO, packet_size=_WIFI_ECHO_SIZE.sample_int(rng), max_packets=15, interval=0.5
            )
            return [_Session("UDP-ECHO", 12.0 + 0.5 * i, None, shape)]

        # STREAMING
        shape = FlowShape(
            AppKind.ON_OFF,
            packet_size=_WIFI_STREAM_SIZE.sample_int(rng),
            data_rate=format_rate(_WIFI_STREAM_RATE.sample(rng) * 1e6),
            on_time=Distribution.constant(_WIFI_STREAM_ON.sample(rng)),
            off_time=Distribution.constant(_WIFI_STREAM_OFF.sample(rng)),
        )
        return [_Session("STREAMING", 100.0 + 0.3 * i, None, shape)]

    def _remote_sessions(
        self, service: str, i: int, rng: np.random.Generator, email_label: str
    ) -> List[_Session]:
        def below(n: int) -> int:
            return int(rng.integers(0, n))

        if service == "HTTP":
            shape = FlowShape(AppKind.BULK, max_bytes=256 * KB + below(1 * MB))
            return [_Session("HTTP", 5.0 + 10 * i, 30.0 + 20 * i, shape)]
        if service == "HTTPS":
            shape = FlowShape(AppKind.BULK, max_bytes=128 * KB + below(1 * MB))
            return [_Session("HTTPS", 12.0 + 15 * i, None, shape)]
        if service == "EMAIL":
            shape = FlowShape(AppKind.BULK, max_bytes=20 * KB + below(80 * KB))
            return [_Session(email_label, 20.0 + 10 * i + below(15), None, shape)]
        if service == "DNS":
            shape = FlowShape(AppKind.ECHO, packet_size=48, max_packets=3, interval=1.5 + below(3))
            return [_Session("DNS", 30.0 + 5 * i, 150.0 + 10 * i, shape)]
        if service == "FTP":
            shape = FlowShape(AppKind.BULK, max_bytes=200 * KB + below(3 * MB))
            return [_Session("FTP", 40.0 + 8 * i + below(20), None, shape)]
        if service == "SSH":
            shape = FlowShape(AppKind.BULK, max_bytes=100 * KB + below(300 * KB))
            return [_Session("SSH", 50.0 + 6 * i + below(10), None, shape)]
        if service == "UDP-ECHO":
            shape = FlowShape(
                AppKind.ECHO, packet_size=256 + below(512), max_packets=10, interval=2.0 + below(2)
            )
            return [_Session("UDP-ECHO", 55.0 + 4 * i + below(20), None, shape)]

        # STREAMING: constant-rate sender
        shape = FlowShape(
            AppKind.ON_OFF,
            packet_size=512 + below(1024),
            data_rate="1Mbps",
            on_time=Distribution.constant(1000.0),
            off_time=Distribution.constant(0.0),
        )
        return [_Session("STREAMING", 60.0 + 3 * i + below(20), 160.0, shape)]

    # ── Internal helpers ────────────────────────────────────────────

    def _email_labels(self, population: str, n: int) -> List[str]:
        """Balanced, seed-shuffled mail protocol per client."""
        labels = [EMAIL_PROTOCOLS[k % len(EMAIL_PROTOCOLS)] for k in range(n)]
        rng = self.streams.stream("benign", population, "EMAIL", "protocol")
        return [labels[k] for k in rng.permutation(n)]

    def _descriptor(self, client: Node, population: str, session: _Session) -> FlowDescriptor:
        self._flow_counter += 1
        flow_id = f"BEN{self._flow_counter:08d}"
        binding = self.registry.get(session.label)
        start, stop = clamp_window(session.start, session.stop, self.horizon)
        return FlowDescriptor(
            flow_id=flow_id,
            label=session.label,
            category=Category.BENIGN,
            src_node=client.node_id,
            src_address=client.primary_address,
            dst_node=binding.node_id,
            dst_address=binding.address,
            dst_port=binding.port,
            transport=binding.transport,
            shape=session.shape,
            start=start,
            stop=stop,
            population=population,
            seed=self.streams.flow_seed(flow_id),
        )
