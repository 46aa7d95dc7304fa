"""
Configuration management for the IDS scenario generator.
Loads YAML config with environment variable overrides.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "config.yaml"

ENV_OVERRIDES = {
    "IDSGEN_SEED": ("scenario", "seed"),
    "IDSGEN_HORIZON": ("scenario", "horizon"),
    "IDSGEN_OUTPUT_DIR": ("scenario", "output_dir"),
    "IDSGEN_LOG_LEVEL": ("logging", "level"),
}

# Overrides whose values are coerced to numbers; the rest stay strings
NUMERIC_OVERRIDES = {"IDSGEN_SEED", "IDSGEN_HORIZON"}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file with optional environment variable overrides.

    Priority: ENV vars > YAML config > model defaults

    Args:
        config_path: Path to YAML config file. Falls back to config/config.yaml.

    Returns:
        Merged configuration dictionary.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    # ── Environment variable overrides ──────────────────────────────
    for env_key, (section, key) in ENV_OVERRIDES.items():
        env_val = os.environ.get(env_key)
        if env_val is None:
            continue
        value: Any = env_val
        if env_key in NUMERIC_OVERRIDES:
            try:
                value = int(env_val)
            except ValueError:
                try:
                    value = float(env_val)
                except ValueError:
                    pass
        config.setdefault(section, {})[key] = value

    return config


def get_nested(config: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Safely retrieve a nested config value."""
    current = config
    for k in keys:
        if isinstance(current, dict):
            current = current.get(k, default)
        else:
            return default
    return current
