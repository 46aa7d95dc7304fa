"""
Seeded random sources for the scenario generators.

Every generator draws from a stream obtained from one ``RandomStreams``
factory. A stream is keyed by name (e.g. ``("benign", "wifi", "HTTP")``) so
the values it yields do not depend on how many other streams were consumed
before it; a whole scenario is reproducible from the root seed alone.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np


def _key_to_int(key: str) -> int:
    # Python's hash() is salted per process, so derive a stable 32-bit word
    return int.from_bytes(hashlib.sha256(key.encode("utf-8")).digest()[:4], "big")


class RandomStreams:
    """Factory of independent, named ``numpy.random.Generator`` streams."""

    def __init__(self, seed: Optional[int] = None) -> None:
        if seed is None:
            seed = int(np.random.SeedSequence().entropy % (2 ** 63))
        self.root_seed = int(seed)

    def stream(self, *keys: str) -> np.random.Generator:
        """Return a fresh generator for the given key path."""
        spawn_key = tuple(_key_to_int(k) for k in keys)
        seq = np.random.SeedSequence(self.root_seed, spawn_key=spawn_key)
        return np.random.default_rng(seq)

    def flow_seed(self, *keys: str) -> int:
        """Seed handed to the engine for the per-flow on/off samplers."""
        return int(self.stream("flow-seed", *keys).integers(0, 2 ** 31 - 1))


@dataclass(frozen=True)
class Distribution:
    """
    A named random distribution.

    ``kind`` is one of ``constant``, ``uniform`` or ``exponential``; the
    parameters follow the engine's attribute names (``Constant``, ``Min`` and
    ``Max``, ``Mean``).
    """

    kind: str
    params: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    KINDS = ("constant", "uniform", "exponential")

    def __post_init__(self) -> None:
        if self.kind not in self.KINDS:
            raise ValueError(f"Unknown distribution kind: {self.kind}")

    # ── Constructors ────────────────────────────────────────────────

    @classmethod
    def constant(cls, value: float) -> "Distribution":
        return cls("constant", (("Constant", float(value)),))

    @classmethod
    def uniform(cls, low: float, high: float) -> "Distribution":
        if high < low:
            raise ValueError(f"Uniform bounds inverted: [{low}, {high}]")
        return cls("uniform", (("Min", float(low)), ("Max", float(high))))

    @classmethod
    def exponential(cls, mean: float) -> "Distribution":
        if mean <= 0:
            raise ValueError(f"Exponential mean must be positive, got {mean}")
        return cls("exponential", (("Mean", float(mean)),))

    # ── Sampling ────────────────────────────────────────────────────

    @property
    def param_dict(self) -> Dict[str, float]:
        return dict(self.params)

    def sample(self, rng: np.random.Generator) -> float:
        p = self.param_dict
        if self.kind == "constant":
            return p["Constant"]
        if self.kind == "uniform":
            return float(rng.uniform(p["Min"], p["Max"]))
        return float(rng.exponential(p["Mean"]))

    def sample_int(self, rng: np.random.Generator) -> int:
        """Integer draw; uniform bounds are inclusive on both ends."""
        p = self.param_dict
        if self.kind == "uniform":
            return int(rng.integers(int(p["Min"]), int(p["Max"]), endpoint=True))
        return int(self.sample(rng))

    # ── Rendering ───────────────────────────────────────────────────

    def to_engine_attribute(self) -> str:
        """Render as an engine random-variable attribute string."""
        name = {
            "constant": "ConstantRandomVariable",
            "uniform": "UniformRandomVariable",
            "exponential": "ExponentialRandomVariable",
        }[self.kind]
        args = "|".join(f"{k}={v:g}" for k, v in self.params)
        return f"ns3::{name}[{args}]"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, **self.param_dict}
