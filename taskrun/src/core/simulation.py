from __future__ import annotations

from typing import List

from .tools import CapabilityRegistry
from .types import Plan, SimulationResult


def simulate_plan(plan: Plan, registry: CapabilityRegistry) -> SimulationResult:
    """Dry-run ``plan`` against ``registry`` without invoking anything."""

    lines: List[str] = []
    resolvable = 0
    for call in plan.iter_tool_calls():
        spec = registry.spec_for(call.name)
        if spec is None:
            lines.append(f"capability '{call.name}' not registered")
            continue
        resolvable += 1
        lines.append(f"will invoke capability '{spec.name}': {spec.description} (hint: {spec.input_hint})")
    summary = f"Plan contains {len(plan)} step(s) and will attempt {resolvable} tool call(s)."
    return SimulationResult(predicted_outcome=summary, warnings=lines)


__all__ = ["simulate_plan"]
