"""
Scenario Timeline: the single ordered record of every flow in a scenario.

Generators append descriptors; ``freeze`` validates them and produces the
immutable, start-ordered view consumed by the exporter and the engine.
"""

from __future__ import annotations

import hashlib
import json
from collections import Counter
from typing import Any, Dict, Iterable, Iterator, List, Tuple

from ..errors import TimelineConflictError
from .traffic_generator import FlowDescriptor


class Timeline:
    """Append-only collection of FlowDescriptors."""

    def __init__(self) -> None:
        self._flows: List[FlowDescriptor] = []
        self._frozen = False

    def add(self, flow: FlowDescriptor) -> None:
        if self._frozen:
            raise TimelineConflictError("Timeline is frozen; no more flows can be added")
        self._flows.append(flow)

    def extend(self, flows: Iterable[FlowDescriptor]) -> None:
        for flow in flows:
            self.add(flow)

    def __len__(self) -> int:
        return len(self._flows)

    def freeze(self, horizon: float) -> "FrozenTimeline":
        """
        Validate every descriptor and return the frozen timeline.

        Raises:
            TimelineConflictError: on an invalid interval, an empty label, or
                exclusive windows of different labels colliding on the same
                (address, port).
        """
        for flow in self._flows:
            if not flow.label:
                raise TimelineConflictError(f"Flow {flow.flow_id} has an empty label")
            if not 0 <= flow.start < flow.stop <= horizon:
                raise TimelineConflictError(
                    f"Flow {flow.flow_id} ({flow.label}) interval [{flow.start}, {flow.stop}] "
                    f"is not inside [0, {horizon}]"
                )
        self._check_exclusive_windows()
        self._frozen = True
        # sorted() is stable, so equal starts keep insertion order
        ordered = tuple(sorted(self._flows, key=lambda f: f.start))
        return FrozenTimeline(ordered, float(horizon))

    def _check_exclusive_windows(self) -> None:
        hulls: Dict[Tuple[str, int], Dict[str, Tuple[float, float]]] = {}
        for flow in self._flows:
            if not flow.exclusive:
                continue
            per_label = hulls.setdefault(flow.target, {})
            lo, hi = per_label.get(flow.label, (flow.start, flow.stop))
            per_label[flow.label] = (min(lo, flow.start), max(hi, flow.stop))

        for (address, port), per_label in hulls.items():
            spans = sorted(per_label.items(), key=lambda item: item[1])
            for (name_a, (_, stop_a)), (name_b, (start_b, _)) in zip(spans, spans[1:]):
                if start_b < stop_a:
                    raise TimelineConflictError(
                        f"Exclusive windows of {name_a} and {name_b} overlap on "
                        f"{address}:{port} ({start_b} < {stop_a})"
                    )


class FrozenTimeline:
    """Immutable, start-ordered tuple of descriptors."""

    def __init__(self, flows: Tuple[FlowDescriptor, ...], horizon: float) -> None:
        self._flows = flows
        self.horizon = horizon

    @property
    def flows(self) -> Tuple[FlowDescriptor, ...]:
        return self._flows

    def __iter__(self) -> Iterator[FlowDescriptor]:
        return iter(self._flows)

    def __len__(self) -> int:
        return len(self._flows)

    def by_label(self, label: str) -> List[FlowDescriptor]:
        return [f for f in self._flows if f.label == label]

    def attacks(self) -> List[FlowDescriptor]:
        return [f for f in self._flows if f.is_attack]

    def counts_by_label(self) -> Dict[str, int]:
        return dict(sorted(Counter(f.label for f in self._flows).items()))

    def label_windows(self) -> Dict[str, Tuple[float, float]]:
        """Hull of every label's flows."""
        windows: Dict[str, Tuple[float, float]] = {}
        for f in self._flows:
            lo, hi = windows.get(f.label, (f.start, f.stop))
            windows[f.label] = (min(lo, f.start), max(hi, f.stop))
        return windows

    def to_dict(self) -> Dict[str, Any]:
        return {
            "horizon": self.horizon,
            "flow_count": len(self._flows),
            "flows": [f.to_dict() for f in self._flows],
        }

    def to_json(self) -> str:
        """Canonical JSON: identical bytes for identical scenarios."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def digest(self) -> str:
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()
