"""
Command-line entry point: build a labeled IDS scenario and export it.

Usage:
    idsgen [--config CONFIG] [--seed SEED] [--horizon SECONDS] [--output-dir DIR]
           [--enable a,b] [--disable c] [--list-attacks]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .export.engine import DryRunEngine
from .simulation.attack_generator import ATTACK_CATALOG
from .simulation.scenario_orchestrator import ScenarioOrchestrator
from .utils.config import DEFAULT_CONFIG_PATH
from .utils.logger import setup_logger
from .utils.settings import ScenarioSettings

EXIT_CONFIG_ERROR = 2


def _csv_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Labeled IDS dataset scenario generator")
    parser.add_argument("--config", type=str, default=None, help="YAML config file")
    parser.add_argument("--horizon", type=float, default=None, help="Scenario length (s)")
    parser.add_argument("--seed", type=int, default=None, help="Root random seed")
    parser.add_argument("--output-dir", type=str, default=None)
    parser.add_argument("--enterprise-clients", type=int, default=None)
    parser.add_argument("--dmz-servers", type=int, default=None)
    parser.add_argument("--remote-clients", type=int, default=None)
    parser.add_argument("--wifi-stations", type=int, default=None)
    parser.add_argument("--enable", type=_csv_list, default=None, help="Only these attack archetypes")
    parser.add_argument("--disable", type=_csv_list, default=None, help="Skip these attack archetypes")
    parser.add_argument("--list-attacks", action="store_true", help="Print the attack catalog and exit")
    parser.add_argument("--log-level", type=str, default=None)
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> ScenarioSettings:
    """Config file (if any) plus command-line overrides."""
    if args.config is None and not DEFAULT_CONFIG_PATH.exists():
        settings = ScenarioSettings()
    else:
        settings = ScenarioSettings.load(args.config)

    overrides: Dict[str, Dict[str, Any]] = {}

    def put(section: str, key: str, value: Any) -> None:
        if value is not None:
            overrides.setdefault(section, {})[key] = value

    put("scenario", "horizon", args.horizon)
    put("scenario", "seed", args.seed)
    put("scenario", "output_dir", args.output_dir)
    put("topology", "enterprise_clients", args.enterprise_clients)
    put("topology", "dmz_servers", args.dmz_servers)
    put("topology", "remote_clients", args.remote_clients)
    put("topology", "wifi_stations", args.wifi_stations)
    put("attacks", "archetypes", args.enable)
    put("attacks", "disabled", args.disable)
    put("logging", "level", args.log_level)

    return settings.with_overrides(overrides) if overrides else settings


def print_catalog() -> None:
    print(f"{'Archetype':<22} {'Attackers':<32} {'Targets':<16} Duration")
    for p in ATTACK_CATALOG:
        attackers = ", ".join(f"{n} {pop}" for pop, n in p.attackers)
        print(f"{p.name:<22} {attackers:<32} {'+'.join(p.targets):<16} {p.duration:g}s")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.list_attacks:
        print_catalog()
        return 0

    try:
        settings = build_settings(args)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger = setup_logger(
        level=settings.logging.level,
        log_file=settings.logging.log_file,
        json_format=settings.logging.json_format,
    )

    orchestrator = ScenarioOrchestrator(settings)
    try:
        scenario = orchestrator.build()
    except ConfigurationError as exc:
        logger.error("Scenario rejected", extra={"error": str(exc)})
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    output_dir = Path(settings.scenario.output_dir)
    paths = orchestrator.execute(DryRunEngine(output_dir), output_dir)

    counts = scenario.timeline.counts_by_label()
    print(f"\n{'═'*60}")
    print(f"  Scenario: {scenario.name}   seed={scenario.context.streams.root_seed}")
    print(f"  Flows: {len(scenario.timeline)} across {len(counts)} labels")
    for w in scenario.warnings:
        print(f"  ⚠️  {w}")
    for kind, path in paths.items():
        print(f"  {kind:<14} {path}")
    print(f"{'═'*60}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
