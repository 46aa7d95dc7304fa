"""
Validated scenario settings.

The raw YAML dictionary from ``load_config`` is checked against these pydantic
models; any validation failure surfaces as a ConfigurationError.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import ConfigurationError
from .config import load_config


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ScenarioSection(_Section):
    name: str = "ids-dataset"
    seed: Optional[int] = Field(None, ge=0)
    horizon: float = Field(1500.0, ge=10.0)
    output_dir: str = "output"


class TopologySection(_Section):
    core_routers: int = Field(1, ge=0)
    distribution_switches: int = Field(2, ge=0)
    access_switches: int = Field(1, ge=0)
    enterprise_clients: int = Field(10, ge=0)
    dmz_servers: int = Field(5, ge=0)
    vpn_servers: int = Field(1, ge=0)
    remote_clients: int = Field(10, ge=0)
    wifi_access_points: int = Field(1, ge=0)
    wifi_stations: int = Field(10, ge=0)


class AddressingSection(_Section):
    base: str = "10.1.0.0"
    pool_prefix: int = Field(16, ge=8, le=30)
    spare_hosts: int = Field(0, ge=0)


class ServicesSection(_Section):
    service_start: float = Field(1.0, ge=0.0)
    cnc_port: int = Field(9999, ge=1, le=65535)
    rogue_port: int = Field(8081, ge=1, le=65535)
    cnc_window: Optional[Tuple[float, float]] = None
    rogue_window: Optional[Tuple[float, float]] = None


class BenignSection(_Section):
    enabled: bool = True
    services: Optional[List[str]] = None
    populations: Optional[List[str]] = None


class AttacksSection(_Section):
    enabled: bool = True
    archetypes: Optional[List[str]] = None
    disabled: List[str] = Field(default_factory=list)
    epoch: float = Field(60.0, ge=0.0)
    attackers: Dict[str, int] = Field(default_factory=dict)
    windows: Dict[str, Tuple[float, float]] = Field(default_factory=dict)

    def active_archetypes(self) -> List[str]:
        """Enabled archetype names in catalog order."""
        # Imported here: the simulation package imports this module
        from ..simulation.attack_generator import ATTACKS_BY_NAME, check_attack_names

        if not self.enabled:
            return []
        requested = list(ATTACKS_BY_NAME) if self.archetypes is None else self.archetypes
        check_attack_names(requested)
        check_attack_names(self.disabled)
        return [n for n in ATTACKS_BY_NAME if n in requested and n not in self.disabled]


class CaptureSection(_Section):
    enabled: bool = True
    prefix: str = "ids"
    promiscuous: bool = True
    flow_monitor: bool = True


class LoggingSection(_Section):
    level: str = "INFO"
    json_format: bool = True
    log_file: Optional[str] = None


class ScenarioSettings(_Section):
    scenario: ScenarioSection = Field(default_factory=ScenarioSection)
    topology: TopologySection = Field(default_factory=TopologySection)
    addressing: AddressingSection = Field(default_factory=AddressingSection)
    services: ServicesSection = Field(default_factory=ServicesSection)
    benign: BenignSection = Field(default_factory=BenignSection)
    attacks: AttacksSection = Field(default_factory=AttacksSection)
    capture: CaptureSection = Field(default_factory=CaptureSection)
    logging: LoggingSection = Field(default_factory=LoggingSection)

    @model_validator(mode="after")
    def _windows_inside_horizon(self) -> "ScenarioSettings":
        horizon = self.scenario.horizon
        for name, (start, stop) in self.attacks.windows.items():
            if not 0 <= start < stop <= horizon:
                raise ValueError(f"attacks.windows.{name} [{start}, {stop}] must lie inside [0, {horizon}]")
        if self.services.service_start >= horizon:
            raise ValueError(f"services.service_start must be before the horizon {horizon}")
        return self

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "ScenarioSettings":
        try:
            return cls.model_validate(config or {})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid scenario configuration:\n{exc}") from exc

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "ScenarioSettings":
        return cls.from_config(load_config(config_path))

    def with_overrides(self, overrides: Dict[str, Dict[str, Any]]) -> "ScenarioSettings":
        """Copy with ``{section: {key: value}}`` overrides applied and re-validated."""
        data = self.model_dump()
        for section, values in overrides.items():
            data.setdefault(section, {}).update(values)
        return self.from_config(data)
