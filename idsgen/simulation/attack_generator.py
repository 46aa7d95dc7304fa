"""
Attack Catalog and Injector for the IDS scenario generator.

Every archetype is one declarative AttackProfile row; a single expansion
function turns a profile plus its scheduled window into labeled, exclusive
FlowDescriptors. Windows are placed relative to each other (duration plus gap
after the previous enabled archetype) starting at the attack epoch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import ConfigurationError, UnknownAttackError
from .network_topology import NetworkTopology, Node
from .randomness import Distribution, RandomStreams
from .service_registry import ServiceBinding, ServiceRegistry, Transport
from .traffic_generator import AppKind, Category, FlowDescriptor, FlowShape

logger = logging.getLogger(__name__)

# Target sentinel for archetypes aimed at the core router itself
CORE_ROUTER = "core-router"

SCAN_PORTS = (21, 22, 25, 53, 80, 110, 123, 143, 179, 443, 500, 587)

SQL_PAYLOADS = (
    "' OR '1'='1",
    "' OR 'a'='a",
    "' OR 1=1 --",
    "'; DROP TABLE users; --",
    "'; SELECT * FROM users WHERE 'a'='a",
    "' UNION SELECT NULL, NULL, NULL --",
)

XSS_PAYLOADS = (
    "GET /search?q=<script>alert('XSS1')</script> HTTP/1.1",
    "GET /profile?name=<script>alert('XSS2')</script> HTTP/1.1",
    "GET /comments?id=1'><script>alert('XSS3')</script> HTTP/1.1",
    "GET /index.html?page=<script>alert('XSS4')</script> HTTP/1.1",
)


def constant_rate(data_rate: str, packet_size: int) -> FlowShape:
    """On-off sender that never switches off."""
    return FlowShape(
        AppKind.ON_OFF,
        packet_size=packet_size,
        data_rate=data_rate,
        on_time=Distribution.constant(1000.0),
        off_time=Distribution.constant(0.0),
    )


def _bulk(max_bytes: int) -> FlowShape:
    return FlowShape(AppKind.BULK, max_bytes=max_bytes)


def _pulsed(data_rate: str, packet_size: int = 0) -> FlowShape:
    return FlowShape(
        AppKind.ON_OFF,
        packet_size=packet_size,
        data_rate=data_rate,
        on_time=Distribution.constant(0.5),
        off_time=Distribution.constant(0.5),
    )


@dataclass(frozen=True)
class AttackProfile:
    """Declarative description of one attack archetype."""

    name: str
    attackers: Tuple[Tuple[str, int], ...]
    targets: Tuple[str, ...]
    shape: FlowShape
    duration: float
    gap: float = 0.0
    transport: Optional[Transport] = None
    stagger: float = 0.1
    attempts: int = 1
    attempt_spacing: float = 0.0
    scan_ports: Tuple[int, ...] = ()
    scan_spacing: float = 0.5
    payloads: Tuple[str, ...] = ()
    payload_spacing: float = 0.5
    payload_overhead: int = 50
    description: str = ""

    @property
    def populations(self) -> List[str]:
        return [pop for pop, _ in self.attackers]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "attackers": {pop: n for pop, n in self.attackers},
            "targets": list(self.targets),
            "duration": self.duration,
            "gap": self.gap,
            "description": self.description,
        }


# Catalog order is scheduling order
ATTACK_CATALOG: Tuple[AttackProfile, ...] = (
    AttackProfile(
        "syn-flood", (("remote", 3),), ("HTTP",), _bulk(0), duration=40,
        description="continuous zero-payload TCP opens against the web server",
    ),
    AttackProfile(
        "udp-flood", (("enterprise", 3),), ("DNS",), constant_rate("100Mbps", 512), duration=25,
        description="100 Mbps UDP flood against the DNS server",
    ),
    AttackProfile(
        "port-scan", (("wifi", 3),), ("HTTP",), _bulk(512), duration=18, gap=25,
        scan_ports=SCAN_PORTS,
        description="one connection attempt per well-known port on the web host",
    ),
    AttackProfile(
        "ssh-brute-force", (("remote", 3),), ("SSH",), _bulk(512), duration=15, gap=1,
        stagger=0.2, attempts=20, attempt_spacing=0.2,
        description="repeated SSH login attempts",
    ),
    AttackProfile(
        "icmp-flood", (("wifi", 3),), (CORE_ROUTER,),
        FlowShape(AppKind.ECHO, packet_size=64, interval=0.001, max_packets=1_000_000),
        duration=50, gap=21, transport=Transport.ICMP,
        description="64 byte echo requests every millisecond at the core router",
    ),
    AttackProfile(
        "mitm-redirect", (("enterprise", 2),), ("HTTP-ROGUE",), _bulk(1024 * 1024),
        duration=51, gap=7,
        description="clients redirected to a rogue HTTP listener",
    ),
    AttackProfile(
        "arp-spoof", (("enterprise", 1),), ("HTTP",), constant_rate("1Mbps", 128),
        duration=25, gap=8, transport=Transport.UDP,
        description="spoofing traffic aimed at the web host address",
    ),
    AttackProfile(
        "ftp-brute-force", (("remote", 3),), ("FTP",), _bulk(512), duration=20, gap=1,
        attempts=10, attempt_spacing=0.5,
        description="repeated FTP login attempts",
    ),
    AttackProfile(
        "sql-injection", (("enterprise", 3),), ("HTTP",), _pulsed("2Mbps"), duration=65, gap=1,
        payloads=SQL_PAYLOADS, payload_spacing=0.5,
        description="one flow per SQL injection payload",
    ),
    AttackProfile(
        "credential-stuffing", (("remote", 3),), ("VPN",), _bulk(512), duration=39, gap=11,
        stagger=0.2, attempts=15, attempt_spacing=0.1,
        description="leaked credentials replayed against the VPN gateway",
    ),
    AttackProfile(
        "ftp-login-flood", (("enterprise", 2),), ("FTP",), _bulk(1024), duration=50,
        attempts=30, attempt_spacing=0.1,
        description="high-rate FTP login attempts from inside",
    ),
    AttackProfile(
        "vpn-brute-force", (("remote", 3),), ("VPN",), _bulk(512), duration=12, gap=1,
        attempts=10, attempt_spacing=0.5,
        description="password guessing against the VPN gateway",
    ),
    AttackProfile(
        "botnet-cnc", (("wifi", 3),), ("CNC",),
        FlowShape(
            AppKind.ON_OFF,
            packet_size=128,
            data_rate="500kbps",
            on_time=Distribution.constant(1.0),
            off_time=Distribution.exponential(5.0),
        ),
        duration=61, stagger=0.2,
        description="periodic bot check-ins with the command-and-control server",
    ),
    AttackProfile(
        "ddos", (("enterprise", 1), ("wifi", 1), ("remote", 1)), ("HTTP",),
        constant_rate("100Mbps", 1024), duration=25, gap=1, transport=Transport.UDP, stagger=0.5,
        description="distributed UDP flood from every client population",
    ),
    AttackProfile(
        "vpn-tunnel-flood", (("remote", 3),), ("VPN",), constant_rate("50Mbps", 1024),
        duration=25, gap=1,
        description="50 Mbps flood through the VPN gateway",
    ),
    AttackProfile(
        "xss", (("enterprise", 2),), ("HTTP",), _pulsed("500kbps"), duration=60, gap=69,
        payloads=XSS_PAYLOADS, payload_spacing=0.2,
        description="one flow per cross-site scripting request",
    ),
    AttackProfile(
        "zero-day", (("enterprise", 1),), ("HTTP", "HTTPS"), constant_rate("10Mbps", 1024),
        duration=50, gap=145,
        description="exploit traffic on both web ports at once",
    ),
)

ATTACKS_BY_NAME: Dict[str, AttackProfile] = {p.name: p for p in ATTACK_CATALOG}


def check_attack_names(names: Sequence[str]) -> None:
    unknown = [n for n in names if n not in ATTACKS_BY_NAME]
    if unknown:
        raise UnknownAttackError(
            f"Unknown attack archetypes: {unknown}. Known: {list(ATTACKS_BY_NAME)}"
        )


@dataclass(frozen=True)
class AttackWindow:
    name: str
    start: float
    stop: float
    pinned: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "start": self.start, "stop": self.stop, "pinned": self.pinned}


class AttackScheduler:
    """
    Places archetype windows on the timeline.

    Args:
        horizon: Scenario horizon in seconds.
        epoch: Start of the first window.
        pinned: Explicit ``name -> (start, stop)`` windows; they advance the cursor.
    """

    def __init__(
        self,
        horizon: float,
        epoch: float = 60.0,
        pinned: Optional[Mapping[str, Tuple[float, float]]] = None,
    ) -> None:
        self.horizon = float(horizon)
        self.epoch = float(epoch)
        self.pinned = dict(pinned or {})
        check_attack_names(list(self.pinned))

    def schedule(self, profiles: Sequence[AttackProfile]) -> List[AttackWindow]:
        windows: List[AttackWindow] = []
        cursor = self.epoch
        for profile in profiles:
            if profile.name in self.pinned:
                start, stop = (float(v) for v in self.pinned[profile.name])
                window = AttackWindow(profile.name, start, stop, pinned=True)
            else:
                start = cursor + profile.gap
                window = AttackWindow(profile.name, start, start + profile.duration)

            if not 0 <= window.start < window.stop:
                raise ConfigurationError(
                    f"Attack window for {window.name} is empty or negative: "
                    f"[{window.start}, {window.stop}]"
                )
            if window.stop > self.horizon:
                raise ConfigurationError(
                    f"Attack window for {window.name} ends at {window.stop}, "
                    f"past the horizon {self.horizon}"
                )
            windows.append(window)
            # A pin that ends early must not pull the cursor back over placed windows
            cursor = max(cursor, window.stop)
        return windows


class AttackGenerator:
    """
    Expands enabled archetypes into attack FlowDescriptors.

    Args:
        topology: Addressed topology.
        registry: Service registry used to resolve targets.
        streams: Seeded generator factory.
        horizon: Scenario horizon in seconds.
        enabled: Archetypes to inject, in any order (default: the whole catalog).
        attacker_counts: Per-archetype override of the attackers drawn from each population.
        scheduler: Window scheduler (default: epoch 60 s, nothing pinned).
    """

    def __init__(
        self,
        topology: NetworkTopology,
        registry: ServiceRegistry,
        streams: RandomStreams,
        horizon: float,
        enabled: Optional[Sequence[str]] = None,
        attacker_counts: Optional[Mapping[str, int]] = None,
        scheduler: Optional[AttackScheduler] = None,
    ) -> None:
        self.topology = topology
        self.registry = registry
        self.streams = streams
        self.horizon = float(horizon)

        names = list(ATTACKS_BY_NAME) if enabled is None else list(enabled)
        check_attack_names(names)
        self.profiles = [p for p in ATTACK_CATALOG if p.name in names]

        self.attacker_counts = dict(attacker_counts or {})
        check_attack_names(list(self.attacker_counts))
        for name, count in self.attacker_counts.items():
            if count < 0:
                raise ConfigurationError(f"Attacker count for {name} cannot be negative: {count}")

        self.scheduler = scheduler or AttackScheduler(self.horizon)
        self.windows: List[AttackWindow] = []
        self.warnings: List[str] = []
        self._flow_counter = 0

    # ── Public API ──────────────────────────────────────────────────

    def expand(self) -> List[FlowDescriptor]:
        """Schedule every enabled archetype and emit its flows."""
        self.windows = self.scheduler.schedule(self.profiles)
        flows: List[FlowDescriptor] = []
        for profile, window in zip(self.profiles, self.windows):
            produced = self._expand_profile(profile, window)
            logger.info(
                "Attack archetype expanded",
                extra={
                    "attack": profile.name,
                    "window": [window.start, window.stop],
                    "flows": len(produced),
                },
            )
            flows.extend(produced)
        return flows

    def window_for(self, name: str) -> AttackWindow:
        for window in self.windows:
            if window.name == name:
                return window
        raise KeyError(name)

    # ── Expansion ───────────────────────────────────────────────────

    def _expand_profile(self, profile: AttackProfile, window: AttackWindow) -> List[FlowDescriptor]:
        rng = self.streams.stream("attack", profile.name)
        attackers = self._pick_attackers(profile, rng)
        if not attackers:
            self._warn(f"{profile.name}: no attackers available, archetype skipped")
            return []

        targets = [self._resolve_target(label, profile, window) for label in profile.targets]

        flows: List[FlowDescriptor] = []
        for position, (population, node) in enumerate(attackers):
            base = window.start + position * profile.stagger
            for target in targets:
                for offset, port, shape in self._variants(profile, target[2]):
                    start = base + offset
                    if start >= window.stop:
                        raise ConfigurationError(
                            f"Attack window for {profile.name} is too short: flow would start "
                            f"at {start:.3f} after the window closes at {window.stop}"
                        )
                    flows.append(self._descriptor(profile, population, node, target, port, shape, start, window.stop))
        return flows

    def _variants(self, profile: AttackProfile, port: int) -> List[Tuple[float, int, FlowShape]]:
        """(start offset, destination port, shape) of every flow one attacker sends."""
        if profile.scan_ports:
            return [
                (k * profile.scan_spacing, scan_port, profile.shape)
                for k, scan_port in enumerate(profile.scan_ports)
            ]
        if profile.payloads:
            return [
                (
                    k * profile.payload_spacing,
                    port,
                    replace(
                        profile.shape,
                        packet_size=len(payload) + profile.payload_overhead,
                        payload=payload,
                    ),
                )
                for k, payload in enumerate(profile.payloads)
            ]
        return [(k * profile.attempt_spacing, port, profile.shape) for k in range(profile.attempts)]

    def _pick_attackers(self, profile: AttackProfile, rng) -> List[Tuple[str, Node]]:
        picked: List[Tuple[str, Node]] = []
        override = self.attacker_counts.get(profile.name)
        for population, count in profile.attackers:
            requested = count if override is None else override
            pool = self.topology.population(population)
            n = min(requested, len(pool))
            if n < requested:
                self._warn(
                    f"{profile.name}: requested {requested} {population} attackers "
                    f"but only {len(pool)} exist; using {n}"
                )
            if n == 0:
                continue
            chosen = sorted(int(k) for k in rng.choice(len(pool), size=n, replace=False))
            picked.extend((population, pool[k]) for k in chosen)
        return picked

    def _resolve_target(
        self, label: str, profile: AttackProfile, window: AttackWindow
    ) -> Tuple[str, str, int, Transport]:
        """(node id, address, port, transport) of one archetype target."""
        if label == CORE_ROUTER:
            core = self.topology.core_router
            return core.node_id, core.primary_address, 0, profile.transport or Transport.ICMP

        binding: ServiceBinding = self.registry.get(label)
        if not binding.covers(window.start, window.stop):
            raise ConfigurationError(
                f"{profile.name} window [{window.start}, {window.stop}] is outside the "
                f"{label} service window [{binding.start}, {binding.stop}]"
            )
        return binding.node_id, binding.address, binding.port, profile.transport or binding.transport

    def _descriptor(
        self,
        profile: AttackProfile,
        population: str,
        attacker: Node,
        target: Tuple[str, str, int, Transport],
        port: int,
        shape: FlowShape,
        start: float,
        stop: float,
    ) -> FlowDescriptor:
        self._flow_counter += 1
        flow_id = f"ATK{self._flow_counter:08d}"
        node_id, address, _, transport = target
        return FlowDescriptor(
            flow_id=flow_id,
            label=profile.name,
            category=Category.ATTACK,
            src_node=attacker.node_id,
            src_address=attacker.primary_address,
            dst_node=node_id,
            dst_address=address,
            dst_port=port,
            transport=transport,
            shape=shape,
            start=start,
            stop=stop,
            population=population,
            exclusive=True,
            seed=self.streams.flow_seed(flow_id),
        )

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)
